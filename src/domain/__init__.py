"""Domain models and DTOs."""

from src.domain.announcement import Announcement
from src.domain.child import RosterEntry
from src.domain.create_models import (
    AnnouncementUpdate,
    ChildCreate,
    ParentCreate,
    RewardCreate,
    TaskCreate,
    TaskSubmission,
)
from src.domain.reward import Redemption, Reward
from src.domain.task import Task, TaskAction, TaskLog, TaskStatus, VerificationDecision
from src.domain.update_models import FeedbackUpdate, ProfileUpdate
from src.domain.user import HOBBY_OPTIONS, Gender, UserProfile, UserRole


__all__ = [
    "HOBBY_OPTIONS",
    "Announcement",
    "AnnouncementUpdate",
    "ChildCreate",
    "FeedbackUpdate",
    "Gender",
    "ParentCreate",
    "ProfileUpdate",
    "Redemption",
    "Reward",
    "RewardCreate",
    "RosterEntry",
    "Task",
    "TaskAction",
    "TaskCreate",
    "TaskLog",
    "TaskStatus",
    "TaskSubmission",
    "UserProfile",
    "UserRole",
]
