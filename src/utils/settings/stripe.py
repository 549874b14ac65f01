"""Stripe settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr


class StripeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    STRIPE_WEBHOOK_SECRET: str = "whsec_test_webhook_secret"
    STRIPE_SECRET_KEY: SecretStr = SecretStr("sk_test_stripe_secret_key")

    # Prices that make a subscription count as the annual membership
    STRIPE_ANNUAL_PRICE_IDS: list[str] = ["price_1Sie474mPKLoo2btIfTbxoxk"]
    # Membership-platform price ids stored on lifecycle events
    STRIPE_ANNUAL_PLAN_PRICE_IDS: list[str] = ["prc_annual-membership-jj7y0h89"]
    STRIPE_TRIAL_PRICE_IDS: list[str] = ["prc_30-day-free-trial-mg18p0u9z"]
    # Substrings that mark a price id as a trial or annual price
    STRIPE_TRIAL_PRICE_MARKERS: list[str] = ["trial", "30-day"]
    STRIPE_ANNUAL_PRICE_MARKERS: list[str] = ["annual"]

    STRIPE_SETTLEMENT_CURRENCY: str = "gbp"

    STRIPE_PAGE_SIZE: int = 100
    STRIPE_MAX_PAGES: int = 100
    STRIPE_INVOICE_CAP: int = 5000

    @property
    def key_mode(self) -> str:
        """Live or test mode, derived from the secret key prefix."""
        if self.STRIPE_SECRET_KEY.get_secret_value().startswith("sk_live_"):
            return "live"
        return "test"
