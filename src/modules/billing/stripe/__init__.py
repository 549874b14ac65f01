"""Stripe ledger access: subscriptions, invoices and refunds."""

from .exceptions import LedgerReadError
from .ledger import LedgerReader
from .refunds import RefundResolver

__all__ = ["LedgerReader", "LedgerReadError", "RefundResolver"]
