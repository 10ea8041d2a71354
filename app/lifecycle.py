from __future__ import annotations

from enum import StrEnum

from app.errors import ConflictError, ErrorCode


class ExperienceStatus(StrEnum):
    DRAFT = "draft"  # created, invisible to the public
    PUBLISHED = "published"  # browsable and bookable
    BLOCKED = "blocked"  # taken down by an admin, terminal


class Transition(StrEnum):
    PUBLISH = "publish"
    BLOCK = "block"


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

# (current status, transition) -> resulting status. Pairs not listed are
# rejected. Re-publishing a published experience and re-blocking a blocked
# one are no-ops that succeed.
_TRANSITIONS: dict[tuple[ExperienceStatus, Transition], ExperienceStatus] = {
    (ExperienceStatus.DRAFT, Transition.PUBLISH): ExperienceStatus.PUBLISHED,
    (ExperienceStatus.PUBLISHED, Transition.PUBLISH): ExperienceStatus.PUBLISHED,
    (ExperienceStatus.DRAFT, Transition.BLOCK): ExperienceStatus.BLOCKED,
    (ExperienceStatus.PUBLISHED, Transition.BLOCK): ExperienceStatus.BLOCKED,
    (ExperienceStatus.BLOCKED, Transition.BLOCK): ExperienceStatus.BLOCKED,
}

INITIAL_STATUS = ExperienceStatus.DRAFT
BROWSABLE_STATUS = ExperienceStatus.PUBLISHED
BOOKABLE_STATUS = ExperienceStatus.PUBLISHED


def sources_for(transition: Transition) -> set[ExperienceStatus]:
    """Statuses from which `transition` is defined."""
    return {current for (current, t) in _TRANSITIONS if t == transition}


def apply_transition(current: ExperienceStatus, transition: Transition) -> ExperienceStatus:
    """
    Return the status `transition` leads to from `current`.
    Raise ConflictError(INVALID_TRANSITION) when the pair is not defined.
    """
    try:
        return _TRANSITIONS[(ExperienceStatus(current), transition)]
    except KeyError:
        allowed = sorted(s.value for s in sources_for(transition))
        raise ConflictError(
            f"Cannot {transition} an experience that is '{current}'",
            code=ErrorCode.INVALID_TRANSITION,
            details=[f"{transition} is allowed from: {', '.join(allowed)}"],
        ) from None
