"""Trial-to-annual conversion classification.

Stripe forgets trial history once a subscription converts, so the set of
converted subscriptions is rebuilt from two paths on every pass:

* member history: annual members from the membership snapshot whose stored
  lifecycle events (or signup timing) show a trial, mapped back to a Stripe
  subscription or customer id;
* subscription trial end: any annual subscription whose own ``trial_end`` is
  in the past.

The union only ever adds. Members that look converted but cannot be tied to
a Stripe id are reported in ``unresolved_members`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import orjson

from src.database.models import PlanEvent, PlanEventType
from src.modules.billing.constants import PricingConfig
from src.modules.billing.stripe.records import (
    InvoiceRecord,
    SubscriptionRecord,
    expandable_id,
)
from src.modules.members.snapshot import MemberRow
from src.modules.metrics.detectors import (
    DEFAULT_DETECTORS,
    MemberContext,
    MemberDetector,
    first_matching,
)
from src.utils.logger import get_logger
from src.utils.timestamps import ensure_utc

logger = get_logger(__name__)

SOURCE_MEMBER_HISTORY = "member_history"
SOURCE_SUBSCRIPTION_TRIAL_END = "subscription_trial_end"


@dataclass(frozen=True)
class ConversionRecord:
    member_id: str | None
    subscription_id: str | None
    customer_id: str | None
    source: str
    detector: str
    converted_at: datetime | None = None


@dataclass(frozen=True)
class ConversionSet:
    records: tuple[ConversionRecord, ...] = ()
    unresolved_members: tuple[str, ...] = ()
    subscription_ids: frozenset[str] = field(default=frozenset())
    customer_ids: frozenset[str] = field(default=frozenset())

    @classmethod
    def from_records(
        cls, records: Iterable[ConversionRecord], unresolved: Iterable[str] = ()
    ) -> ConversionSet:
        records = tuple(records)
        return cls(
            records=records,
            unresolved_members=tuple(unresolved),
            subscription_ids=frozenset(
                r.subscription_id for r in records if r.subscription_id
            ),
            # Only customer-level records attribute by customer
            customer_ids=frozenset(
                r.customer_id
                for r in records
                if r.customer_id and not r.subscription_id
            ),
        )

    def __len__(self) -> int:
        return len(self.records)

    def contains_subscription(self, subscription: SubscriptionRecord) -> bool:
        return subscription.id in self.subscription_ids or (
            subscription.customer_id is not None
            and subscription.customer_id in self.customer_ids
        )

    def contains_invoice(self, invoice: InvoiceRecord) -> bool:
        if invoice.subscription_id and invoice.subscription_id in self.subscription_ids:
            return True
        return invoice.customer_id is not None and invoice.customer_id in self.customer_ids


def payload_object(event: PlanEvent) -> dict | None:
    """The ``data.object`` of a stored Stripe event, or None if unreadable."""
    payload: Any = event.payload
    if payload is None:
        return None
    if isinstance(payload, (str, bytes)):
        try:
            payload = orjson.loads(payload)
        except orjson.JSONDecodeError:
            logger.debug(
                "Unparseable event payload", stripe_event_id=event.stripe_event_id
            )
            return None
    try:
        obj = payload["data"]["object"]
    except (KeyError, TypeError):
        logger.debug(
            "Event payload has no data.object", stripe_event_id=event.stripe_event_id
        )
        return None
    return obj if isinstance(obj, dict) else None


def payload_subscription_id(event: PlanEvent) -> str | None:
    """Subscription id carried by an event, falling back to the stored column."""
    obj = payload_object(event)
    subscription_id = None
    if obj is not None:
        if event.event_type.startswith("customer.subscription."):
            subscription_id = obj.get("id")
        else:
            subscription_id = expandable_id(obj.get("subscription"))
            if subscription_id is None:
                parent = obj.get("parent")
                details = (
                    parent.get("subscription_details") if isinstance(parent, dict) else None
                )
                if isinstance(details, dict):
                    subscription_id = expandable_id(details.get("subscription"))
    if not isinstance(subscription_id, str):
        subscription_id = None
    return subscription_id or event.stripe_subscription_id


def _payload_amount_paid(event: PlanEvent) -> int | None:
    obj = payload_object(event)
    if obj is None:
        return None
    return obj.get("amount_paid")


def _payload_price_ids(event: PlanEvent) -> list[str]:
    obj = payload_object(event)
    lines = (obj or {}).get("lines")
    data = lines.get("data") if isinstance(lines, dict) else None
    if not isinstance(data, list):
        return []
    price_ids = []
    for line in data:
        if not isinstance(line, dict):
            continue
        price_id = expandable_id(line.get("price"))
        if isinstance(price_id, str):
            price_ids.append(price_id)
    return price_ids


def _is_annual_payment(event: PlanEvent, pricing: PricingConfig) -> bool:
    """A paid, non-zero invoice event for an annual price."""
    if event.event_type != PlanEventType.INVOICE_PAID.value:
        return False
    if _payload_amount_paid(event) == 0:
        return False
    return pricing.is_annual_price(event.ms_price_id) or any(
        pricing.is_annual_price(price_id) for price_id in _payload_price_ids(event)
    )


class _MemberHistory:
    """Events and ledger data gathered for one annual member."""

    def __init__(
        self,
        member: MemberRow,
        events: list[PlanEvent],
        subscriptions_by_id: dict[str, SubscriptionRecord],
        subscriptions_by_customer: dict[str, list[SubscriptionRecord]],
        annual_subscription_ids: set[str],
        pricing: PricingConfig,
    ):
        self.member = member
        self.events = events
        self.pricing = pricing
        self.subscriptions_by_id = subscriptions_by_id
        self.annual_subscription_ids = annual_subscription_ids

        self.customer_ids: list[str] = []
        for customer_id in [member.plan.stripe_customer_id] + [
            e.stripe_customer_id for e in events
        ]:
            if customer_id and customer_id not in self.customer_ids:
                self.customer_ids.append(customer_id)

        self.subscriptions = [
            sub
            for customer_id in self.customer_ids
            for sub in subscriptions_by_customer.get(customer_id, [])
        ]

    def first_annual_payment_at(self) -> datetime | None:
        """Earliest evidence of the first annual payment, or None.

        The plan's current period start is not used: after a renewal it is
        the latest renewal date.
        """
        for event in self.events:
            if _is_annual_payment(event, self.pricing):
                return ensure_utc(event.created_at)

        annual = [s for s in self.subscriptions if s.id in self.annual_subscription_ids]
        if annual:
            return min(s.created for s in annual)

        for subscription_id in (
            self.member.plan.stripe_subscription_id,
            self.resolve_subscription_id(),
        ):
            if subscription_id in self.subscriptions_by_id:
                return self.subscriptions_by_id[subscription_id].created
        return None

    def resolve_subscription_id(self) -> str | None:
        created = [
            e for e in self.events
            if e.event_type == PlanEventType.SUBSCRIPTION_CREATED.value
        ]
        paid = [
            e for e in self.events if e.event_type == PlanEventType.INVOICE_PAID.value
        ]
        for group in (created, paid):
            candidates = [sid for sid in map(payload_subscription_id, group) if sid]
            if not candidates:
                continue
            for subscription_id in candidates:
                if subscription_id in self.annual_subscription_ids:
                    return subscription_id
            return candidates[0]
        return self.member.plan.stripe_subscription_id

    def resolve_customer_id(self) -> str | None:
        for sub in self.subscriptions:
            if sub.id in self.annual_subscription_ids:
                return sub.customer_id
        return self.customer_ids[0] if self.customer_ids else None


def _events_for_member(
    member: MemberRow,
    by_member: dict[str, list[PlanEvent]],
    by_customer: dict[str, list[PlanEvent]],
) -> list[PlanEvent]:
    own = by_member.get(member.member_id, [])
    customer_ids = {e.stripe_customer_id for e in own if e.stripe_customer_id}
    if member.plan.stripe_customer_id:
        customer_ids.add(member.plan.stripe_customer_id)

    seen: dict[str, PlanEvent] = {e.stripe_event_id: e for e in own}
    for customer_id in customer_ids:
        for event in by_customer.get(customer_id, []):
            seen.setdefault(event.stripe_event_id, event)
    return sorted(
        seen.values(), key=lambda e: (ensure_utc(e.created_at), e.stripe_event_id)
    )


def classify_conversions(
    members: Iterable[MemberRow],
    events: Iterable[PlanEvent],
    subscriptions: Iterable[SubscriptionRecord],
    *,
    now: datetime,
    pricing: PricingConfig,
    detectors: tuple[MemberDetector, ...] = DEFAULT_DETECTORS,
) -> ConversionSet:
    """Build the conversion set for one aggregation pass.

    Inputs are read, never modified. ``subscriptions`` should span every
    status the pass fetched so member history can be matched to canceled
    subscriptions too.
    """
    subscriptions = list(subscriptions)
    subscriptions_by_id = {sub.id: sub for sub in subscriptions}
    annual_ids = {sub.id for sub in subscriptions if sub.is_annual(pricing)}
    subscriptions_by_customer: dict[str, list[SubscriptionRecord]] = {}
    for sub in subscriptions:
        if sub.customer_id:
            subscriptions_by_customer.setdefault(sub.customer_id, []).append(sub)

    by_member: dict[str, list[PlanEvent]] = {}
    by_customer: dict[str, list[PlanEvent]] = {}
    for event in events:
        if event.ms_member_id:
            by_member.setdefault(event.ms_member_id, []).append(event)
        if event.stripe_customer_id:
            by_customer.setdefault(event.stripe_customer_id, []).append(event)

    records: list[ConversionRecord] = []
    unresolved: list[str] = []
    seen_subscriptions: set[str] = set()
    customer_level: set[str] = set()

    for member in members:
        if not member.is_active_annual:
            continue

        history = _MemberHistory(
            member,
            _events_for_member(member, by_member, by_customer),
            subscriptions_by_id,
            subscriptions_by_customer,
            annual_ids,
            pricing,
        )
        first_payment = history.first_annual_payment_at()
        context = MemberContext(
            member=member,
            events=tuple(history.events),
            pricing=pricing,
            first_annual_payment_at=first_payment,
        )
        detector = first_matching(context, detectors)
        if detector is None:
            continue

        subscription_id = history.resolve_subscription_id()
        customer_id = (
            subscriptions_by_id[subscription_id].customer_id
            if subscription_id in subscriptions_by_id
            else history.resolve_customer_id()
        )
        if subscription_id is None and customer_id is None:
            logger.warning(
                "Converted member has no Stripe identifier",
                member_id=member.member_id,
                detector=detector,
            )
            unresolved.append(member.member_id)
            continue

        # Members sharing a Stripe subscription or customer convert once
        if subscription_id is not None:
            if subscription_id in seen_subscriptions:
                logger.debug(
                    "Subscription already converted",
                    member_id=member.member_id,
                    subscription_id=subscription_id,
                )
                continue
            seen_subscriptions.add(subscription_id)
        else:
            if customer_id in customer_level:
                logger.debug(
                    "Customer already converted",
                    member_id=member.member_id,
                    customer_id=customer_id,
                )
                continue
            customer_level.add(customer_id)

        converted_at = (
            subscriptions_by_id[subscription_id].created
            if subscription_id in subscriptions_by_id
            else first_payment
        )
        records.append(
            ConversionRecord(
                member_id=member.member_id,
                subscription_id=subscription_id,
                customer_id=customer_id,
                source=SOURCE_MEMBER_HISTORY,
                detector=detector,
                converted_at=converted_at,
            )
        )

    for sub in subscriptions:
        if sub.id not in annual_ids or not sub.trial_ended_before(now):
            continue
        # Ended during the trial: never paid
        if sub.ended_at is not None and sub.ended_at <= sub.trial_end:
            continue
        if sub.id in seen_subscriptions or sub.customer_id in customer_level:
            continue
        seen_subscriptions.add(sub.id)
        records.append(
            ConversionRecord(
                member_id=None,
                subscription_id=sub.id,
                customer_id=sub.customer_id,
                source=SOURCE_SUBSCRIPTION_TRIAL_END,
                detector=SOURCE_SUBSCRIPTION_TRIAL_END,
                converted_at=sub.created,
            )
        )

    logger.info(
        "Classified conversions",
        conversions=len(records),
        unresolved=len(unresolved),
    )
    return ConversionSet.from_records(records, unresolved)
