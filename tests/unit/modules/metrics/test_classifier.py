"""Conversion classification across member history and subscription trial ends."""

from datetime import timedelta

import pytest

from src.database.models import PlanEvent, PlanEventType
from src.modules.billing.stripe.records import SubscriptionRecord
from src.modules.members.snapshot import MemberRow, PlanSummary
from src.modules.metrics.classifier import (
    SOURCE_MEMBER_HISTORY,
    SOURCE_SUBSCRIPTION_TRIAL_END,
    classify_conversions,
    payload_subscription_id,
)
from tests.unit.modules.billing.fixtures_stripe_objects import (
    NOW,
    days_ago,
    subscription,
)
from tests.utils.pricing import ANNUAL_PLAN_PRICE_ID, ANNUAL_PRICE_ID, TRIAL_PRICE_ID


def _member(member_id: str, signed_up_at, customer_id: str | None = None, **plan) -> MemberRow:
    plan.setdefault("status", "ACTIVE")
    plan.setdefault("plan_type", "annual")
    return MemberRow(
        member_id=member_id,
        email=f"{member_id}@example.com",
        signed_up_at=signed_up_at,
        plan=PlanSummary(stripe_customer_id=customer_id, **plan),
    )


def _event(event_id: str, event_type: PlanEventType, created_at, **kwargs) -> PlanEvent:
    return PlanEvent(
        stripe_event_id=event_id,
        event_type=event_type.value,
        created_at=created_at,
        **kwargs,
    )


def _sub(sub_id: str, customer: str, **kwargs) -> SubscriptionRecord:
    return SubscriptionRecord.from_stripe(subscription(sub_id, customer=customer, **kwargs))


def _classify(members, events, subscriptions, pricing):
    return classify_conversions(members, events, subscriptions, now=NOW, pricing=pricing)


class TestMemberHistory:
    def test_trial_checkout_converts_member(self, pricing):
        member = _member("mem_1", days_ago(20), customer_id="cus_1")
        events = [
            _event(
                "evt_trial",
                PlanEventType.CHECKOUT_COMPLETED,
                days_ago(20),
                ms_member_id="mem_1",
                stripe_customer_id="cus_1",
                ms_price_id=TRIAL_PRICE_ID,
            ),
            _event(
                "evt_created",
                PlanEventType.SUBSCRIPTION_CREATED,
                days_ago(10),
                ms_member_id="mem_1",
                stripe_customer_id="cus_1",
                payload={"data": {"object": {"id": "sub_annual", "object": "subscription"}}},
            ),
        ]
        subs = [_sub("sub_annual", "cus_1", created=days_ago(10))]

        result = _classify([member], events, subs, pricing)

        assert len(result) == 1
        record = result.records[0]
        assert record.subscription_id == "sub_annual"
        assert record.customer_id == "cus_1"
        assert record.source == SOURCE_MEMBER_HISTORY
        assert record.detector == "trial_checkout"
        assert record.converted_at == days_ago(10)

    def test_same_day_annual_purchase_is_direct(self, pricing):
        member = _member("mem_1", days_ago(5), customer_id="cus_1")
        events = [
            _event(
                "evt_paid",
                PlanEventType.INVOICE_PAID,
                days_ago(5) + timedelta(hours=2),
                ms_member_id="mem_1",
                stripe_customer_id="cus_1",
                ms_price_id=ANNUAL_PRICE_ID,
                stripe_subscription_id="sub_annual",
            )
        ]
        subs = [_sub("sub_annual", "cus_1", created=days_ago(5))]

        result = _classify([member], events, subs, pricing)

        assert len(result) == 0

    def test_signup_gap_converts_without_trial_events(self, pricing):
        member = _member("mem_1", days_ago(40), customer_id="cus_1")
        subs = [_sub("sub_annual", "cus_1", created=days_ago(5))]

        result = _classify([member], [], subs, pricing)

        assert len(result) == 1
        assert result.records[0].detector == "signup_gap"
        assert result.contains_subscription(subs[0])

    def test_trial_price_on_any_event_converts(self, pricing):
        member = _member("mem_1", days_ago(2), customer_id="cus_1")
        events = [
            _event(
                "evt_updated",
                PlanEventType.SUBSCRIPTION_UPDATED,
                days_ago(1),
                ms_member_id="mem_1",
                ms_price_id=TRIAL_PRICE_ID,
            )
        ]
        subs = [_sub("sub_annual", "cus_1", created=days_ago(2))]

        result = _classify([member], events, subs, pricing)

        assert result.records[0].detector == "trial_price_history"

    def test_paid_events_prefer_known_annual_subscription(self, pricing):
        member = _member("mem_1", days_ago(30), customer_id="cus_1")
        events = [
            _event(
                "evt_paid_trial",
                PlanEventType.INVOICE_PAID,
                days_ago(30),
                ms_member_id="mem_1",
                ms_price_id=TRIAL_PRICE_ID,
                payload={"data": {"object": {"subscription": "sub_trial", "amount_paid": 0}}},
            ),
            _event(
                "evt_paid_annual",
                PlanEventType.INVOICE_PAID,
                days_ago(3),
                ms_member_id="mem_1",
                payload={
                    "data": {
                        "object": {
                            "parent": {
                                "subscription_details": {"subscription": "sub_annual"}
                            },
                            "amount_paid": 7900,
                        }
                    }
                },
            ),
        ]
        subs = [_sub("sub_annual", "cus_1", created=days_ago(3))]

        result = _classify([member], events, subs, pricing)

        assert result.records[0].subscription_id == "sub_annual"

    def test_falls_back_to_plan_summary_subscription(self, pricing):
        member = _member(
            "mem_1", days_ago(60), customer_id=None, stripe_subscription_id="sub_summary"
        )

        result = _classify([member], [], [], pricing)

        # Nothing dates the first annual payment, so no signal fires
        assert len(result) == 0

        subs = [_sub("sub_summary", "cus_7", created=days_ago(10))]
        result = _classify([member], [], subs, pricing)

        assert result.records[0].subscription_id == "sub_summary"
        assert result.records[0].customer_id == "cus_7"
        assert "sub_summary" in result.subscription_ids

    def test_customer_level_match_when_no_subscription(self, pricing):
        member = _member("mem_1", days_ago(60), customer_id="cus_1")
        events = [
            _event(
                "evt_paid",
                PlanEventType.INVOICE_PAID,
                days_ago(10),
                ms_member_id="mem_1",
                ms_price_id=ANNUAL_PLAN_PRICE_ID,
            )
        ]

        result = _classify([member], events, [], pricing)

        record = result.records[0]
        assert record.subscription_id is None
        assert record.customer_id == "cus_1"
        assert record.converted_at == days_ago(10)
        assert result.customer_ids == frozenset({"cus_1"})

    def test_unresolved_member_is_reported_not_counted(self, pricing):
        member = _member("mem_1", days_ago(60))
        events = [
            _event(
                "evt_paid",
                PlanEventType.INVOICE_PAID,
                days_ago(10),
                ms_member_id="mem_1",
                ms_price_id=ANNUAL_PRICE_ID,
            )
        ]

        result = _classify([member], events, [], pricing)

        assert len(result) == 0
        assert result.unresolved_members == ("mem_1",)

    def test_renewed_direct_member_is_not_converted(self, pricing):
        member = _member(
            "mem_direct",
            days_ago(400),
            stripe_subscription_id="sub_direct",
            current_period_start=days_ago(35),
        )
        subs = [_sub("sub_direct", "cus_direct", created=days_ago(400))]

        result = _classify([member], [], subs, pricing)

        assert len(result) == 0
        assert result.unresolved_members == ()

    def test_renewal_date_alone_does_not_date_first_payment(self, pricing):
        member = _member(
            "mem_1", days_ago(400), customer_id="cus_1", current_period_start=days_ago(35)
        )

        assert len(_classify([member], [], [], pricing)) == 0

    def test_non_annual_paid_event_does_not_date_first_payment(self, pricing):
        member = _member("mem_1", days_ago(60), customer_id="cus_1")
        events = [
            _event(
                "evt_paid_monthly",
                PlanEventType.INVOICE_PAID,
                days_ago(10),
                ms_member_id="mem_1",
                ms_price_id="price_monthly",
                payload={
                    "data": {
                        "object": {
                            "amount_paid": 900,
                            "lines": {"data": [{"price": {"id": "price_monthly"}}]},
                        }
                    }
                },
            )
        ]
        subs = [_sub("sub_annual", "cus_1", created=days_ago(60))]

        assert len(_classify([member], events, subs, pricing)) == 0

    def test_annual_price_on_invoice_lines_dates_first_payment(self, pricing):
        member = _member("mem_1", days_ago(60), customer_id="cus_1")
        events = [
            _event(
                "evt_paid",
                PlanEventType.INVOICE_PAID,
                days_ago(10),
                ms_member_id="mem_1",
                payload={
                    "data": {
                        "object": {
                            "subscription": "sub_annual",
                            "amount_paid": 7900,
                            "lines": {"data": [{"price": ANNUAL_PRICE_ID}]},
                        }
                    }
                },
            )
        ]

        result = _classify([member], events, [], pricing)

        assert result.records[0].detector == "signup_gap"
        assert result.records[0].subscription_id == "sub_annual"
        assert result.records[0].converted_at == days_ago(10)

    def test_members_sharing_a_customer_convert_once(self, pricing):
        members = [
            _member("mem_a", days_ago(60), customer_id="cus_1"),
            _member("mem_b", days_ago(50), customer_id="cus_1"),
        ]
        subs = [_sub("sub_1", "cus_1", created=days_ago(5))]

        result = _classify(members, [], subs, pricing)

        assert len(result) == 1
        assert result.records[0].member_id == "mem_a"

    def test_members_sharing_a_subscription_convert_once(self, pricing):
        members = [
            _member("mem_a", days_ago(60), stripe_subscription_id="sub_1"),
            _member("mem_b", days_ago(50), stripe_subscription_id="sub_1"),
        ]
        subs = [_sub("sub_1", "cus_1", created=days_ago(5))]

        result = _classify(members, [], subs, pricing)

        assert len(result) == 1
        assert result.subscription_ids == frozenset({"sub_1"})

    def test_inactive_and_monthly_members_are_ignored(self, pricing):
        members = [
            _member("mem_inactive", days_ago(60), customer_id="cus_1", status="CANCELED"),
            _member("mem_monthly", days_ago(60), customer_id="cus_2", plan_type="monthly"),
        ]
        subs = [_sub("sub_1", "cus_1", created=days_ago(5))]

        assert len(_classify(members, [], subs, pricing)) == 0


class TestSubscriptionTrialEnd:
    def test_past_trial_end_always_converts(self, pricing):
        subs = [_sub("sub_annual", "cus_9", created=days_ago(40), trial_end=days_ago(10))]

        result = _classify([], [], subs, pricing)

        assert len(result) == 1
        assert result.records[0].source == SOURCE_SUBSCRIPTION_TRIAL_END
        assert result.records[0].member_id is None

    def test_future_trial_end_is_not_yet_converted(self, pricing):
        subs = [
            _sub(
                "sub_annual",
                "cus_9",
                status="trialing",
                created=days_ago(5),
                trial_end=NOW + timedelta(days=25),
            )
        ]

        assert len(_classify([], [], subs, pricing)) == 0

    def test_ended_during_trial_is_not_converted(self, pricing):
        subs = [
            _sub(
                "sub_annual",
                "cus_9",
                status="canceled",
                created=days_ago(40),
                trial_end=days_ago(10),
                ended_at=days_ago(12),
            )
        ]

        assert len(_classify([], [], subs, pricing)) == 0

    def test_union_does_not_double_count(self, pricing):
        member = _member("mem_1", days_ago(60), customer_id="cus_1")
        subs = [_sub("sub_annual", "cus_1", created=days_ago(30), trial_end=days_ago(1))]

        result = _classify([member], [], subs, pricing)

        assert len(result) == 1
        assert result.records[0].source == SOURCE_MEMBER_HISTORY


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "{not json",
        {"data": None},
        {"data": {"object": "sub_1"}},
        {"data": {"object": {"subscription": None, "parent": "garbled"}}},
        {"data": {"object": {"parent": {"subscription_details": ["sub_1"]}}}},
        {"data": {"object": {"subscription": {"id": 42}}}},
    ],
)
def test_unreadable_payload_falls_back_to_column(payload):
    event = _event(
        "evt_1",
        PlanEventType.INVOICE_PAID,
        NOW,
        payload=payload,
        stripe_subscription_id="sub_column",
    )

    assert payload_subscription_id(event) == "sub_column"
