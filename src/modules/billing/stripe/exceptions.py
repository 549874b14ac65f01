"""Errors raised while reading the Stripe ledger."""


class LedgerReadError(Exception):
    """A Stripe read failed; the whole aggregation pass must be abandoned."""

    def __init__(self, step: str, cause: Exception | None = None):
        self.step = step
        self.cause = cause
        message = f"Stripe ledger read failed at step '{step}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
