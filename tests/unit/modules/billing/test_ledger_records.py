"""Annual predicate and field extraction for ledger records."""

import pytest

from src.modules.billing.stripe.records import (
    InvoiceRecord,
    LineItem,
    SubscriptionRecord,
    expandable_id,
)
from tests.unit.modules.billing.fixtures_stripe_objects import (
    days_ago,
    invoice,
    subscription,
)
from tests.utils.pricing import ANNUAL_PLAN_PRICE_ID, ANNUAL_PRICE_ID, TRIAL_PRICE_ID


class TestAnnualPredicate:
    def test_year_interval_with_known_price_is_annual(self, pricing):
        record = SubscriptionRecord.from_stripe(subscription("sub_1"))
        assert record.is_annual(pricing) is True

    def test_known_price_with_monthly_interval_is_not_annual(self, pricing):
        record = SubscriptionRecord.from_stripe(
            subscription("sub_1", interval="month")
        )
        assert record.is_annual(pricing) is False

    def test_year_interval_with_unknown_price_is_not_annual(self, pricing):
        record = SubscriptionRecord.from_stripe(
            subscription("sub_1", price_id="price_other_yearly")
        )
        assert record.is_annual(pricing) is False

    def test_no_line_items_is_not_annual(self, pricing):
        record = SubscriptionRecord.from_stripe(subscription("sub_1", items=[]))
        assert record.is_annual(pricing) is False

    def test_any_matching_item_makes_it_annual(self, pricing):
        items = [
            {"price": {"id": "price_addon", "recurring": {"interval": "month"}}},
            {"price": {"id": ANNUAL_PRICE_ID, "recurring": {"interval": "year"}}},
        ]
        record = SubscriptionRecord.from_stripe(subscription("sub_1", items=items))
        assert record.is_annual(pricing) is True


class TestSubscriptionRecord:
    def test_gross_amount_sums_unit_amount_times_quantity(self):
        record = SubscriptionRecord.from_stripe(
            subscription("sub_1", unit_amount=7900, quantity=2)
        )
        assert record.gross_amount == 15800

    def test_period_end_falls_back_to_first_item(self):
        raw = subscription("sub_1")
        raw["current_period_end"] = None
        raw["items"]["data"][0]["current_period_end"] = 1_800_000_000
        record = SubscriptionRecord.from_stripe(raw)
        assert record.current_period_end is not None
        assert int(record.current_period_end.timestamp()) == 1_800_000_000

    def test_expanded_customer_is_reduced_to_id(self):
        record = SubscriptionRecord.from_stripe(subscription("sub_1", customer="cus_9"))
        assert record.customer_id == "cus_9"

    def test_trial_ended_before(self):
        record = SubscriptionRecord.from_stripe(
            subscription("sub_1", trial_end=days_ago(3))
        )
        assert record.trial_ended_before(days_ago(1)) is True
        assert record.trial_ended_before(days_ago(10)) is False


class TestInvoiceRecord:
    def test_first_invoice_and_annual_price(self, pricing):
        record = InvoiceRecord.from_stripe(invoice("in_1"))
        assert record.is_first_invoice is True
        assert record.contains_annual_price(pricing) is True
        assert record.subscription_id == "sub_test_1"

    def test_renewal_is_not_first_invoice(self):
        record = InvoiceRecord.from_stripe(
            invoice("in_1", billing_reason="subscription_cycle")
        )
        assert record.is_first_invoice is False

    def test_currency_is_lowercased(self):
        record = InvoiceRecord.from_stripe(invoice("in_1", currency="GBP"))
        assert record.currency == "gbp"

    def test_refunded_amount_read_from_expanded_charge(self):
        record = InvoiceRecord.from_stripe(
            invoice("in_1", charge={"id": "ch_1", "amount_refunded": 1500})
        )
        assert record.charge_id == "ch_1"
        assert record.amount_refunded == 1500

    def test_amount_paid_falls_back_to_total(self):
        raw = invoice("in_1")
        raw["amount_paid"] = None
        raw["total"] = 4200
        assert InvoiceRecord.from_stripe(raw).amount_paid == 4200

    @pytest.mark.parametrize(
        ("price_id", "expected"),
        [
            (ANNUAL_PRICE_ID, True),
            (ANNUAL_PLAN_PRICE_ID, True),
            (TRIAL_PRICE_ID, True),
            ("price_monthly_addon", False),
        ],
    )
    def test_membership_price(self, pricing, price_id, expected):
        record = InvoiceRecord.from_stripe(invoice("in_1", price_id=price_id))
        assert record.contains_membership_price(pricing) is expected


def test_expandable_id_handles_strings_objects_and_none():
    assert expandable_id("cus_1") == "cus_1"
    assert expandable_id({"id": "cus_2"}) == "cus_2"
    assert expandable_id(None) is None
    assert expandable_id("") is None


def test_line_item_amount():
    item = LineItem(price_id="p", interval="year", unit_amount=100, quantity=3)
    assert item.amount == 300
