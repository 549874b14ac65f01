"""Immutable snapshots of Stripe subscriptions and invoices."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.modules.billing.constants import (
    BillingInterval,
    BillingReason,
    PricingConfig,
    SubscriptionState,
)
from src.utils.timestamps import from_epoch


def expandable_id(value: Any) -> str | None:
    """Return the id of a Stripe field that may be a string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    try:
        return value.get("id")
    except AttributeError:
        return getattr(value, "id", None)


@dataclass(frozen=True)
class LineItem:
    price_id: str | None
    interval: str | None
    unit_amount: int
    quantity: int = 1

    @property
    def amount(self) -> int:
        return self.unit_amount * self.quantity

    @classmethod
    def from_stripe(cls, item: dict) -> LineItem:
        price = item.get("price") or {}
        if isinstance(price, str):
            price = {"id": price}
        recurring = price.get("recurring") or {}
        return cls(
            price_id=price.get("id"),
            interval=recurring.get("interval"),
            unit_amount=price.get("unit_amount") or 0,
            quantity=item.get("quantity") or 1,
        )


@dataclass(frozen=True)
class SubscriptionRecord:
    id: str
    customer_id: str | None
    status: str
    created: datetime
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    ended_at: datetime | None = None
    trial_end: datetime | None = None
    items: tuple[LineItem, ...] = field(default_factory=tuple)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionState.ACTIVE.value

    @property
    def is_trialing(self) -> bool:
        return self.status == SubscriptionState.TRIALING.value

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionState.CANCELED.value

    @property
    def gross_amount(self) -> int:
        """List price per period in minor units, before fees and discounts."""
        return sum(item.amount for item in self.items)

    def is_annual(self, pricing: PricingConfig) -> bool:
        return any(
            item.interval == BillingInterval.YEAR.value
            and item.price_id in pricing.annual_price_ids
            for item in self.items
        )

    def has_trial_price(self, pricing: PricingConfig) -> bool:
        return any(pricing.is_trial_price(item.price_id) for item in self.items)

    def trial_ended_before(self, moment: datetime) -> bool:
        return self.trial_end is not None and self.trial_end < moment

    @classmethod
    def from_stripe(cls, obj: dict) -> SubscriptionRecord:
        items = (obj.get("items") or {}).get("data") or []
        period_end = obj.get("current_period_end")
        if period_end is None and items:
            # Newer API versions carry the period on the items
            period_end = items[0].get("current_period_end")
        return cls(
            id=obj["id"],
            customer_id=expandable_id(obj.get("customer")),
            status=obj.get("status") or "",
            created=from_epoch(obj.get("created") or 0),
            current_period_end=from_epoch(period_end),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            ended_at=from_epoch(obj.get("ended_at")),
            trial_end=from_epoch(obj.get("trial_end")),
            items=tuple(LineItem.from_stripe(item) for item in items),
        )


@dataclass(frozen=True)
class InvoiceRecord:
    id: str
    subscription_id: str | None
    customer_id: str | None
    currency: str
    amount_paid: int
    amount_refunded: int | None
    billing_reason: str | None
    created: datetime
    status: str = "paid"
    charge_id: str | None = None
    price_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_first_invoice(self) -> bool:
        return self.billing_reason == BillingReason.SUBSCRIPTION_CREATE.value

    def contains_annual_price(self, pricing: PricingConfig) -> bool:
        return any(price_id in pricing.annual_price_ids for price_id in self.price_ids)

    def contains_membership_price(self, pricing: PricingConfig) -> bool:
        """Any line for the annual membership or its trial."""
        return any(
            pricing.is_annual_price(price_id) or pricing.is_trial_price(price_id)
            for price_id in self.price_ids
        )

    @classmethod
    def from_stripe(cls, obj: dict) -> InvoiceRecord:
        lines = (obj.get("lines") or {}).get("data") or []
        price_ids = []
        for line in lines:
            price_id = expandable_id(line.get("price"))
            if price_id:
                price_ids.append(price_id)

        amount_paid = obj.get("amount_paid")
        if amount_paid is None:
            amount_paid = obj.get("total") or 0

        amount_refunded = obj.get("amount_refunded")
        charge = obj.get("charge")
        if amount_refunded is None and isinstance(charge, dict):
            # Expanded charge carries the refunded total
            amount_refunded = charge.get("amount_refunded")

        return cls(
            id=obj["id"],
            subscription_id=expandable_id(obj.get("subscription")),
            customer_id=expandable_id(obj.get("customer")),
            currency=(obj.get("currency") or "").lower(),
            amount_paid=amount_paid,
            amount_refunded=amount_refunded,
            billing_reason=obj.get("billing_reason"),
            created=from_epoch(obj.get("created") or 0),
            status=obj.get("status") or "paid",
            charge_id=expandable_id(obj.get("charge")),
            price_ids=tuple(price_ids),
        )
