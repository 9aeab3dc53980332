"""Analysis record status machine.

processing -> completed
processing -> failed

Terminal states have no outgoing transitions. Writers validate here and
then persist with a conditional update, so a record finished by the
pipeline cannot be failed by the reaper afterwards, and vice versa.
"""

from app.core.logging import get_logger
from app.models.analysis import AnalysisStatus
from app.services.errors import InvalidStatusTransitionError

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.PROCESSING: frozenset(
        {AnalysisStatus.COMPLETED, AnalysisStatus.FAILED}
    ),
    AnalysisStatus.COMPLETED: frozenset(),
    AnalysisStatus.FAILED: frozenset(),
}


def is_terminal(status: AnalysisStatus | str) -> bool:
    """Check whether a status has no outgoing transitions."""
    return not ALLOWED_TRANSITIONS[AnalysisStatus(status)]


def validate_status_transition(
    from_status: AnalysisStatus | str,
    to_status: AnalysisStatus | str,
) -> None:
    """Validate a status change.

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
            or either status is unknown.
    """
    try:
        source = AnalysisStatus(from_status)
        target = AnalysisStatus(to_status)
    except ValueError as e:
        raise InvalidStatusTransitionError(str(from_status), str(to_status)) from e

    if target not in ALLOWED_TRANSITIONS[source]:
        logger.warning(
            "Rejected analysis status transition",
            extra={"from_status": source.value, "to_status": target.value},
        )
        raise InvalidStatusTransitionError(source.value, target.value)
