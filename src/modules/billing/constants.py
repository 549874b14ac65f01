"""Membership pricing constants and configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.utils.settings.stripe import StripeSettings


class SubscriptionState(str, Enum):
    """Stripe subscription statuses the metrics engine reads."""

    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"


class BillingInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"


class BillingReason(str, Enum):
    SUBSCRIPTION_CREATE = "subscription_create"
    SUBSCRIPTION_CYCLE = "subscription_cycle"
    SUBSCRIPTION_UPDATE = "subscription_update"
    MANUAL = "manual"


SUBSCRIPTION_EXPAND = ["data.customer", "data.items.data.price"]
INVOICE_EXPAND = ["data.subscription", "data.charge", "data.lines.data.price"]


@dataclass(frozen=True)
class PricingConfig:
    """Which price ids identify the annual membership and the trial."""

    annual_price_ids: frozenset[str]
    annual_plan_price_ids: frozenset[str] = frozenset()
    trial_price_ids: frozenset[str] = frozenset()
    trial_markers: tuple[str, ...] = ("trial", "30-day")
    annual_markers: tuple[str, ...] = ("annual",)
    settlement_currency: str = "gbp"

    def is_trial_price(self, price_id: str | None) -> bool:
        if not price_id:
            return False
        if price_id in self.trial_price_ids:
            return True
        lowered = price_id.lower()
        return any(marker in lowered for marker in self.trial_markers)

    def is_annual_price(self, price_id: str | None) -> bool:
        """Annual on either side: Stripe price ids or membership-platform price ids."""
        if not price_id:
            return False
        if price_id in self.annual_price_ids or price_id in self.annual_plan_price_ids:
            return True
        lowered = price_id.lower()
        return any(marker in lowered for marker in self.annual_markers)

    def is_settlement_currency(self, currency: str | None) -> bool:
        return (currency or "").lower() == self.settlement_currency.lower()

    @classmethod
    def from_settings(cls, settings: StripeSettings | None = None) -> PricingConfig:
        settings = settings or StripeSettings()
        return cls(
            annual_price_ids=frozenset(settings.STRIPE_ANNUAL_PRICE_IDS),
            annual_plan_price_ids=frozenset(settings.STRIPE_ANNUAL_PLAN_PRICE_IDS),
            trial_price_ids=frozenset(settings.STRIPE_TRIAL_PRICE_IDS),
            trial_markers=tuple(m.lower() for m in settings.STRIPE_TRIAL_PRICE_MARKERS),
            annual_markers=tuple(
                m.lower() for m in settings.STRIPE_ANNUAL_PRICE_MARKERS
            ),
            settlement_currency=settings.STRIPE_SETTLEMENT_CURRENCY.lower(),
        )
