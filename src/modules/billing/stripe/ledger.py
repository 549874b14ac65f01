"""Paginated reads of subscriptions and paid invoices from Stripe."""

from datetime import datetime

import stripe  # type: ignore
from stripe import StripeError  # type: ignore

from src.core.base import BaseComponent
from src.modules.billing.constants import (
    INVOICE_EXPAND,
    SUBSCRIPTION_EXPAND,
    SubscriptionState,
)
from src.modules.billing.stripe.exceptions import LedgerReadError
from src.modules.billing.stripe.pagination import BoundedPaginator
from src.modules.billing.stripe.records import InvoiceRecord, SubscriptionRecord
from src.utils.settings.stripe import StripeSettings
from src.utils.timestamps import to_epoch


class LedgerReader(BaseComponent):
    """Read-only view of the Stripe subscription and invoice ledger.

    Every list call pages until Stripe reports no more data or a bound is
    hit. Any failed page aborts the read with ``LedgerReadError``; callers
    must never treat a failed read as an empty ledger.
    """

    def __init__(
        self,
        settings: StripeSettings | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
    ):
        super().__init__()
        settings = settings or StripeSettings()
        stripe.api_key = settings.STRIPE_SECRET_KEY.get_secret_value()
        self.page_size = page_size or settings.STRIPE_PAGE_SIZE
        self.max_pages = max_pages or settings.STRIPE_MAX_PAGES
        self.invoice_cap = settings.STRIPE_INVOICE_CAP
        self.key_mode = settings.key_mode

    def list_subscriptions(
        self, status: SubscriptionState | str
    ) -> list[SubscriptionRecord]:
        status_value = status.value if isinstance(status, SubscriptionState) else status
        step = f"subscriptions:{status_value}"

        def fetch_page(params: dict):
            return stripe.Subscription.list(
                status=status_value, expand=SUBSCRIPTION_EXPAND, **params
            )

        paginator = BoundedPaginator(
            fetch_page,
            page_size=self.page_size,
            max_pages=self.max_pages,
            label=step,
        )
        try:
            raw = paginator.fetch_all()
        except StripeError as e:
            self.logger.error("Ledger read failed", step=step, error=str(e))
            raise LedgerReadError(step, e) from e

        self.logger.info(
            "Fetched subscriptions",
            status=status_value,
            count=len(raw),
            pages=paginator.pages_fetched,
        )
        return [SubscriptionRecord.from_stripe(obj) for obj in raw]

    def list_paid_invoices(
        self, created_after: datetime | None = None, cap: int | None = None
    ) -> list[InvoiceRecord]:
        cap = cap or self.invoice_cap
        step = "invoices:paid"
        filters: dict = {"status": "paid", "expand": INVOICE_EXPAND}
        if created_after is not None:
            filters["created"] = {"gte": to_epoch(created_after)}

        def fetch_page(params: dict):
            return stripe.Invoice.list(**filters, **params)

        paginator = BoundedPaginator(
            fetch_page,
            page_size=self.page_size,
            max_pages=self.max_pages,
            max_items=cap,
            label=step,
        )
        try:
            raw = paginator.fetch_all()
        except StripeError as e:
            self.logger.error("Ledger read failed", step=step, error=str(e))
            raise LedgerReadError(step, e) from e

        self.logger.info(
            "Fetched paid invoices",
            count=len(raw),
            pages=paginator.pages_fetched,
            truncated=paginator.truncated,
        )
        return [InvoiceRecord.from_stripe(obj) for obj in raw]
