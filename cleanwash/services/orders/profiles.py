"""Student profile shape validation and fallback substitution.

Related profile rows arrive as loosely-typed dictionaries. They are checked
here once, producing either ``ValidProfile`` or ``InvalidProfile``; order
assembly substitutes the sentinel student for anything invalid so a broken
relation never removes an order from a queue.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from cleanwash.core.logging import get_logger
from cleanwash.schemas.orders import StudentSummary

logger = get_logger(__name__)

REQUIRED_STUDENT_FIELDS = ("full_name", "gender", "hostel", "floor")

FALLBACK_STUDENT = StudentSummary(
    full_name="Unknown Student",
    gender="unknown",
    hostel="N/A",
    floor="N/A",
    washes_left=0,
    total_washes=40,
)


@dataclass(frozen=True)
class ValidProfile:
    profile: StudentSummary


@dataclass(frozen=True)
class InvalidProfile:
    reason: str
    missing: tuple[str, ...] = ()


ProfileValidation = Union[ValidProfile, InvalidProfile]


def validate_student_profile(raw: Any) -> ProfileValidation:
    """Check that ``raw`` carries every field an order view displays."""
    if raw is None:
        return InvalidProfile("profile not found")
    if not isinstance(raw, Mapping):
        return InvalidProfile(f"expected an object, got {type(raw).__name__}")

    missing = tuple(field for field in REQUIRED_STUDENT_FIELDS if field not in raw)
    if missing:
        return InvalidProfile("missing fields", missing)

    try:
        return ValidProfile(StudentSummary.model_validate(raw))
    except ValidationError as e:
        fields = tuple(
            str(error["loc"][0]) for error in e.errors() if error.get("loc")
        )
        return InvalidProfile("invalid field values", fields)


def resolve_student(raw: Any, order_id: Optional[str] = None) -> StudentSummary:
    """Return the validated profile, or the fallback student."""
    result = validate_student_profile(raw)
    if isinstance(result, ValidProfile):
        return result.profile

    logger.warning(
        "Using fallback student for order",
        order_id=order_id,
        reason=result.reason,
        fields=list(result.missing),
    )
    return FALLBACK_STUDENT
