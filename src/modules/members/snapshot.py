"""Read-only access to the membership snapshot written by the member sync."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select

from src.core.base import BaseService
from src.database.models import MemberSnapshot
from src.utils.timestamps import ensure_utc, parse_iso


@dataclass(frozen=True)
class PlanSummary:
    plan_id: str | None = None
    plan_name: str | None = None
    status: str | None = None
    plan_type: str | None = None
    trial_end: datetime | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    is_trial: bool = False
    is_paid: bool = False
    stripe_subscription_id: str | None = None
    stripe_customer_id: str | None = None

    @property
    def is_active(self) -> bool:
        return (self.status or "").upper() == "ACTIVE"

    @property
    def is_annual(self) -> bool:
        return (self.plan_type or "").lower() == "annual"

    @property
    def is_trialing(self) -> bool:
        return self.is_trial or (self.status or "").upper() == "TRIALING"

    @classmethod
    def from_json(cls, data: dict | None) -> PlanSummary:
        data = data or {}
        return cls(
            plan_id=data.get("plan_id"),
            plan_name=data.get("plan_name"),
            status=data.get("status"),
            plan_type=data.get("plan_type"),
            trial_end=parse_iso(data.get("trial_end")),
            current_period_start=parse_iso(data.get("current_period_start")),
            current_period_end=parse_iso(
                data.get("current_period_end") or data.get("expiry_date")
            ),
            is_trial=bool(data.get("is_trial")),
            is_paid=bool(data.get("is_paid")),
            stripe_subscription_id=data.get("stripe_subscription_id")
            or data.get("subscription_id"),
            stripe_customer_id=data.get("stripe_customer_id")
            or data.get("customer_id"),
        )


@dataclass(frozen=True)
class MemberRow:
    member_id: str
    email: str | None
    signed_up_at: datetime | None
    plan: PlanSummary

    @property
    def is_active_annual(self) -> bool:
        return self.plan.is_annual and self.plan.is_active

    @classmethod
    def from_model(cls, member: MemberSnapshot) -> MemberRow:
        return cls(
            member_id=member.member_id,
            email=member.email,
            signed_up_at=ensure_utc(member.created_at) if member.created_at else None,
            plan=PlanSummary.from_json(member.plan_summary),
        )


class MembershipSnapshotProvider(BaseService):
    """Point-in-time member records; this service never writes them."""

    async def list_members(self) -> list[MemberRow]:
        stmt = select(MemberSnapshot).order_by(MemberSnapshot.created_at.asc())
        result = await self.db.execute(stmt)
        return [MemberRow.from_model(member) for member in result.scalars().all()]

    async def find_by_email(self, email: str) -> MemberRow | None:
        stmt = select(MemberSnapshot).where(
            func.lower(MemberSnapshot.email) == email.strip().lower()
        )
        result = await self.db.execute(stmt)
        member = result.scalars().first()
        return MemberRow.from_model(member) if member else None

    async def find_by_customer_id(self, customer_id: str) -> MemberRow | None:
        """Scan plan summaries for a Stripe customer id.

        Plan summaries are JSON with a dialect-specific shape, so the match
        happens in Python rather than in SQL.
        """
        for member in await self.list_members():
            if member.plan.stripe_customer_id == customer_id:
                return member
        return None
