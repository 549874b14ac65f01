"""Database models for the membership metrics service."""

from .base import Base
from .members import MemberSnapshot
from .plan_events import PlanEvent, PlanEventType

__all__ = [
    # Base
    "Base",
    # Enums
    "PlanEventType",
    # Models
    "MemberSnapshot",
    "PlanEvent",
]
