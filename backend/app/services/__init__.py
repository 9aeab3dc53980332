"""Services layer - Business logic and orchestration.

Services coordinate between repositories, integrations, and other services
to implement the competitor shipping analysis. They contain no direct
database or external API access - that's delegated to repositories and
integrations.
"""

from app.services.analysis_status import (
    ALLOWED_TRANSITIONS,
    is_terminal,
    validate_status_transition,
)
from app.services.errors import (
    AcquisitionError,
    AnalysisFailed,
    ConfigurationError,
    DiscoveryEmpty,
    ExtractionPartialFailure,
    InvalidStatusTransitionError,
    PersistenceError,
    ProfilingUnavailable,
    ShippingCompsError,
)

__all__ = [
    # Status machine
    "ALLOWED_TRANSITIONS",
    "is_terminal",
    "validate_status_transition",
    # Errors
    "AcquisitionError",
    "AnalysisFailed",
    "ConfigurationError",
    "DiscoveryEmpty",
    "ExtractionPartialFailure",
    "InvalidStatusTransitionError",
    "PersistenceError",
    "ProfilingUnavailable",
    "ShippingCompsError",
]
