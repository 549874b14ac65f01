"""Signals that mark an annual member as a converted trial."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from src.database.models import PlanEvent, PlanEventType
from src.modules.billing.constants import PricingConfig
from src.modules.members.snapshot import MemberRow
from src.utils.timestamps import SECONDS_PER_DAY


@dataclass(frozen=True)
class MemberContext:
    member: MemberRow
    events: tuple[PlanEvent, ...]
    pricing: PricingConfig
    first_annual_payment_at: datetime | None = None


class MemberDetector(Protocol):
    name: str

    def matches(self, context: MemberContext) -> bool: ...


class TrialCheckoutDetector:
    """A completed checkout for a trial price."""

    name = "trial_checkout"

    def matches(self, context: MemberContext) -> bool:
        return any(
            event.event_type == PlanEventType.CHECKOUT_COMPLETED.value
            and context.pricing.is_trial_price(event.ms_price_id)
            for event in context.events
        )


class TrialPriceHistoryDetector:
    """Any stored event for the member carrying a trial price, in any order."""

    name = "trial_price_history"

    def matches(self, context: MemberContext) -> bool:
        return any(
            context.pricing.is_trial_price(event.ms_price_id)
            for event in context.events
        )


class SignupGapDetector:
    """Signup precedes the first annual payment by more than a full day.

    A same-day purchase is a direct signup, however the rest of the history
    looks.
    """

    name = "signup_gap"

    def __init__(self, min_gap_seconds: int = SECONDS_PER_DAY):
        self.min_gap_seconds = min_gap_seconds

    def matches(self, context: MemberContext) -> bool:
        signed_up = context.member.signed_up_at
        paid = context.first_annual_payment_at
        if signed_up is None or paid is None:
            return False
        return (paid - signed_up).total_seconds() > self.min_gap_seconds


DEFAULT_DETECTORS: tuple[MemberDetector, ...] = (
    TrialCheckoutDetector(),
    TrialPriceHistoryDetector(),
    SignupGapDetector(),
)


def first_matching(
    context: MemberContext, detectors: tuple[MemberDetector, ...] = DEFAULT_DETECTORS
) -> str | None:
    """Name of the first detector that fires, in priority order."""
    for detector in detectors:
        if detector.matches(context):
            return detector.name
    return None
