"""Outcomes of user actions on the timer and quiz state machines.

A rejected action never mutates state; the caller decides how to explain
it (the HTTP layer turns it into a 409 response).
"""

from dataclasses import dataclass
from enum import Enum


class Rejection(str, Enum):
    MATERIAL_REQUIRED = "material_required"
    STUDY_SESSION_REQUIRED = "study_session_required"
    CONFIRMATION_REQUIRED = "confirmation_required"
    NO_TIME_REMAINING = "no_time_remaining"
    INVALID_STATE = "invalid_state"
    UNKNOWN_PRESET = "unknown_preset"
    INVALID_OPTION = "invalid_option"


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    reason: Rejection | None = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def accepted(cls, message: str = "") -> "ActionResult":
        return cls(ok=True, message=message)

    @classmethod
    def rejected(cls, reason: Rejection, message: str) -> "ActionResult":
        return cls(ok=False, reason=reason, message=message)


class ActionRejected(Exception):
    """Raised at the HTTP boundary for a rejected ``ActionResult``."""

    def __init__(self, result: ActionResult):
        super().__init__(result.message)
        self.result = result


def ensure_accepted(result: ActionResult) -> ActionResult:
    if not result.ok:
        raise ActionRejected(result)
    return result
