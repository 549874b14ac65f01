"""Stored payment lifecycle events."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, Index, String, UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JsonType


class PlanEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"


class PlanEvent(Base):
    """One inbound Stripe notification, stored once per Stripe event id."""

    __tablename__ = "plan_events"
    __table_args__ = (
        Index("ix_plan_events_member_created", "ms_member_id", "created_at"),
        Index("ix_plan_events_customer_created", "stripe_customer_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(UUID, primary_key=True, default=uuid.uuid4)
    stripe_event_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    stripe_customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String, nullable=True)
    stripe_invoice_id: Mapped[str | None] = mapped_column(String, nullable=True)

    ms_member_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ms_app_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ms_plan_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ms_price_id: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)

    # Full Stripe event, kept for audit and late extraction
    payload: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
