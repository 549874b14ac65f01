"""Test factories for database models."""

from .base import AsyncSQLAlchemyModelFactory
from .members import MemberSnapshotFactory
from .plan_events import PlanEventFactory

__all__ = [
    "AsyncSQLAlchemyModelFactory",
    "MemberSnapshotFactory",
    "PlanEventFactory",
]
