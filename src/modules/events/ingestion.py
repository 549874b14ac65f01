"""Turn inbound Stripe notifications into stored lifecycle events."""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.base import BaseService
from src.database.models import PlanEvent
from src.modules.billing.constants import PricingConfig
from src.modules.billing.stripe.records import expandable_id
from src.modules.events.store import EventHistoryStore
from src.modules.members.snapshot import MembershipSnapshotProvider
from src.utils.timestamps import from_epoch, utcnow

METADATA_KEYS = {
    "ms_member_id": ("msMemberId", "ms_member_id"),
    "ms_app_id": ("msAppId", "ms_app_id"),
    "ms_plan_id": ("msPlanId", "ms_plan_id"),
    "ms_price_id": ("msPriceId", "ms_price_id"),
}


class IngestionStatus(str, Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class IngestionResult:
    status: IngestionStatus
    stripe_event_id: str
    event_type: str
    member_id: str | None = None
    reason: str | None = None


def extract_metadata(obj: dict) -> dict[str, str | None]:
    """Membership ids from Stripe metadata, accepting camel and snake case keys."""
    metadata = obj.get("metadata") or {}
    return {
        column: next((metadata[key] for key in keys if metadata.get(key)), None)
        for column, keys in METADATA_KEYS.items()
    }


def extract_price_id(obj: dict) -> str | None:
    """First price id on a subscription or invoice object."""
    for container in ("items", "lines"):
        for line in (obj.get(container) or {}).get("data") or []:
            price_id = expandable_id(line.get("price"))
            if price_id:
                return price_id
    return None


def extract_email(obj: dict) -> str | None:
    return obj.get("customer_email") or (obj.get("customer_details") or {}).get("email")


class EventIngestionService(BaseService):
    """Store each verified Stripe event once, attributed to a member.

    Events whose member cannot be resolved are acknowledged and dropped:
    without a member they can never take part in classification.
    """

    def __init__(self, db: AsyncSession, pricing: PricingConfig | None = None):
        super().__init__(db)
        self.pricing = pricing or PricingConfig.from_settings()
        self.store = EventHistoryStore(db, self.pricing)
        self.members = MembershipSnapshotProvider(db)

    def build_event(self, event: dict) -> PlanEvent:
        obj = (event.get("data") or {}).get("object") or {}
        metadata = extract_metadata(obj)
        object_type = obj.get("object")

        subscription_id = expandable_id(obj.get("subscription"))
        if subscription_id is None and object_type == "subscription":
            subscription_id = obj.get("id")
        invoice_id = expandable_id(obj.get("invoice"))
        if invoice_id is None and object_type == "invoice":
            invoice_id = obj.get("id")

        created = from_epoch(event.get("created")) or utcnow()
        return PlanEvent(
            stripe_event_id=event["id"],
            event_type=event["type"],
            created_at=created,
            stripe_customer_id=expandable_id(obj.get("customer") or obj.get("customer_id")),
            stripe_subscription_id=subscription_id,
            stripe_invoice_id=invoice_id,
            ms_member_id=metadata["ms_member_id"],
            ms_app_id=metadata["ms_app_id"],
            ms_plan_id=metadata["ms_plan_id"],
            ms_price_id=metadata["ms_price_id"] or extract_price_id(obj),
            email=extract_email(obj),
            payload=dict(event),
        )

    async def resolve_member_id(self, plan_event: PlanEvent) -> str | None:
        if plan_event.ms_member_id:
            return plan_event.ms_member_id

        customer_id = plan_event.stripe_customer_id
        if customer_id:
            for prior in await self.store.list_by_subject(customer_id=customer_id):
                if prior.ms_member_id:
                    self.logger.debug(
                        "Member resolved from prior events",
                        customer_id=customer_id,
                        member_id=prior.ms_member_id,
                    )
                    return prior.ms_member_id

            member = await self.members.find_by_customer_id(customer_id)
            if member:
                return member.member_id

        if plan_event.email:
            member = await self.members.find_by_email(plan_event.email)
            if member:
                return member.member_id
        return None

    async def ingest(self, event: dict) -> IngestionResult:
        plan_event = self.build_event(event)
        member_id = await self.resolve_member_id(plan_event)

        if member_id is None:
            self.logger.info(
                "Skipping event without member",
                stripe_event_id=plan_event.stripe_event_id,
                event_type=plan_event.event_type,
            )
            return IngestionResult(
                status=IngestionStatus.SKIPPED,
                stripe_event_id=plan_event.stripe_event_id,
                event_type=plan_event.event_type,
                reason="no_ms_member_id",
            )

        plan_event.ms_member_id = member_id
        result = await self.store.insert_if_absent(plan_event)
        return IngestionResult(
            status=IngestionStatus.STORED if result.inserted else IngestionStatus.DUPLICATE,
            stripe_event_id=plan_event.stripe_event_id,
            event_type=plan_event.event_type,
            member_id=member_id,
        )
