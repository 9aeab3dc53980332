"""Error taxonomy for the shipping analysis pipeline.

Only ConfigurationError, AcquisitionError and AnalysisFailed ever reach
the API layer. ProfilingUnavailable, DiscoveryEmpty and
ExtractionPartialFailure describe degraded outcomes that stages absorb
and log. PersistenceError is logged by the pipeline and never fails a
response.
"""


class ShippingCompsError(Exception):
    """Base exception for shipping analysis errors."""

    pass


class ConfigurationError(ShippingCompsError):
    """Raised when required API keys are missing."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


class AcquisitionError(ShippingCompsError):
    """Raised when the content of a site cannot be acquired."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        self.url = url
        self.message = message
        self.status_code = status_code
        super().__init__(f"Failed to acquire {url[:200]}: {message}")


class ProfilingUnavailable(ShippingCompsError):
    """The business profile could not be generated."""

    pass


class DiscoveryEmpty(ShippingCompsError):
    """Competitor discovery produced zero candidates."""

    pass


class ExtractionPartialFailure(ShippingCompsError):
    """Shipping extraction failed for a single competitor."""

    def __init__(self, website: str, message: str):
        self.website = website
        self.message = message
        super().__init__(f"Shipping extraction failed for {website}: {message}")


class PersistenceError(ShippingCompsError):
    """Raised when an analysis record cannot be written."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"Persistence failed during {operation}: {message}")


class AnalysisFailed(ShippingCompsError):
    """Raised by the pipeline when an analysis cannot be completed."""

    def __init__(self, message: str, analysis_id: str | None = None):
        self.message = message
        self.analysis_id = analysis_id
        super().__init__(message)


class InvalidStatusTransitionError(ShippingCompsError):
    """Raised when an analysis status change is not allowed."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition from '{from_status}' to '{to_status}'"
        )
