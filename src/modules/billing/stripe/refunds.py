"""Net-of-refund invoice amounts."""

from decimal import Decimal

import stripe  # type: ignore
from stripe import StripeError  # type: ignore

from src.core.base import BaseComponent
from src.modules.billing.constants import PricingConfig
from src.modules.billing.stripe.exceptions import LedgerReadError
from src.modules.billing.stripe.pagination import BoundedPaginator
from src.modules.billing.stripe.records import InvoiceRecord
from src.utils.money import minor_to_major


class RefundResolver(BaseComponent):
    """Resolve how much of a paid invoice the business actually kept.

    One instance lives for one aggregation pass: refund totals are memoized
    per charge and the memo is not safe for concurrent use.
    """

    def __init__(self, pricing: PricingConfig, page_size: int = 100, max_pages: int = 10):
        super().__init__()
        self.pricing = pricing
        self.page_size = page_size
        self.max_pages = max_pages
        self._refunds_by_charge: dict[str, int] = {}
        self.skipped_currency = 0
        self.refund_lookups = 0

    def net_amount(self, invoice: InvoiceRecord) -> Decimal:
        return minor_to_major(self.net_amount_minor(invoice))

    def net_amount_minor(self, invoice: InvoiceRecord) -> int:
        if not self.pricing.is_settlement_currency(invoice.currency):
            self.skipped_currency += 1
            self.logger.debug(
                "Skipping non-settlement invoice",
                invoice_id=invoice.id,
                currency=invoice.currency,
            )
            return 0

        if invoice.amount_refunded is not None:
            return max(invoice.amount_paid - invoice.amount_refunded, 0)

        if not invoice.charge_id:
            return max(invoice.amount_paid, 0)

        refunded = self.refunded_for_charge(invoice.charge_id)
        return max(invoice.amount_paid - refunded, 0)

    def refunded_for_charge(self, charge_id: str) -> int:
        if charge_id in self._refunds_by_charge:
            return self._refunds_by_charge[charge_id]

        def fetch_page(params: dict):
            return stripe.Refund.list(charge=charge_id, **params)

        paginator = BoundedPaginator(
            fetch_page,
            page_size=self.page_size,
            max_pages=self.max_pages,
            label=f"refunds:{charge_id}",
        )
        try:
            refunds = paginator.fetch_all()
        except StripeError as e:
            self.logger.error("Refund lookup failed", charge_id=charge_id, error=str(e))
            raise LedgerReadError("refunds", e) from e

        self.refund_lookups += 1
        total = sum(
            refund.get("amount") or 0
            for refund in refunds
            if refund.get("status") not in ("failed", "canceled")
        )
        self._refunds_by_charge[charge_id] = total
        return total
