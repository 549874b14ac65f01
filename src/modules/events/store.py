"""Append-only history of Stripe lifecycle events."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.base import BaseService
from src.database.models import PlanEvent, PlanEventType
from src.modules.billing.constants import PricingConfig


@dataclass(frozen=True)
class InsertResult:
    inserted: bool
    stripe_event_id: str


class EventHistoryStore(BaseService):
    """Idempotent writes and subject lookups over ``plan_events``.

    Rows are never updated or deleted here. A second insert with the same
    Stripe event id is a no-op reported as ``inserted=False``; the stored row
    is left as it was.
    """

    def __init__(self, db: AsyncSession, pricing: PricingConfig | None = None):
        super().__init__(db)
        self.pricing = pricing or PricingConfig.from_settings()

    async def insert_if_absent(self, event: PlanEvent) -> InsertResult:
        values = {
            column.key: getattr(event, column.key)
            for column in PlanEvent.__table__.columns
            if getattr(event, column.key) is not None
        }

        dialect = self.db.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = (
            insert(PlanEvent)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["stripe_event_id"])
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        inserted = (result.rowcount or 0) > 0
        if inserted:
            self.logger.info(
                "Stored lifecycle event",
                stripe_event_id=event.stripe_event_id,
                event_type=event.event_type,
                member_id=event.ms_member_id,
            )
        else:
            self.logger.info(
                "Duplicate lifecycle event ignored",
                stripe_event_id=event.stripe_event_id,
            )
        return InsertResult(inserted=inserted, stripe_event_id=event.stripe_event_id)

    async def list_by_subject(
        self, customer_id: str | None = None, member_id: str | None = None
    ) -> list[PlanEvent]:
        """Events for a Stripe customer and/or member, oldest first."""
        conditions = []
        if customer_id:
            conditions.append(PlanEvent.stripe_customer_id == customer_id)
        if member_id:
            conditions.append(PlanEvent.ms_member_id == member_id)
        if not conditions:
            return []

        stmt = (
            select(PlanEvent)
            .where(or_(*conditions))
            .order_by(PlanEvent.created_at.asc(), PlanEvent.stripe_event_id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def latest_trial_before(
        self, member_id: str, cutoff: datetime
    ) -> PlanEvent | None:
        """Most recent trial checkout for a member strictly before ``cutoff``."""
        stmt = (
            select(PlanEvent)
            .where(
                and_(
                    PlanEvent.ms_member_id == member_id,
                    PlanEvent.event_type == PlanEventType.CHECKOUT_COMPLETED.value,
                    PlanEvent.created_at < cutoff,
                )
            )
            .order_by(PlanEvent.created_at.desc())
        )
        result = await self.db.execute(stmt)
        for event in result.scalars():
            if self.pricing.is_trial_price(event.ms_price_id):
                return event
        return None

    async def list_all(self) -> list[PlanEvent]:
        stmt = select(PlanEvent).order_by(
            PlanEvent.created_at.asc(), PlanEvent.stripe_event_id.asc()
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
