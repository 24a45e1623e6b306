from spireworks.models.achievement import Achievement
from spireworks.models.base import Base
from spireworks.models.practice_result import PracticeResult
from spireworks.models.study_session import StudySession
from spireworks.models.user import User

__all__ = [
    "Achievement",
    "Base",
    "PracticeResult",
    "StudySession",
    "User",
]
