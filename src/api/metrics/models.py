from datetime import date, datetime

from pydantic import BaseModel, Field


class RevenuePeriod(BaseModel):
    """Membership invoice revenue over one window, in major units."""

    gross: float = 0.0
    refunds: float = 0.0
    net: float = 0.0
    paid_count: int = 0


class RevenueSummary(BaseModel):
    all_time: RevenuePeriod = Field(default_factory=RevenuePeriod)
    last_7d: RevenuePeriod = Field(default_factory=RevenuePeriod)
    last_30d: RevenuePeriod = Field(default_factory=RevenuePeriod)
    last_90d: RevenuePeriod = Field(default_factory=RevenuePeriod)


class DailyRevenue(BaseModel):
    date: date
    net: float


class MembershipMetrics(BaseModel):
    """Flat membership and revenue metrics published by one aggregation pass.

    Money fields are major units rounded to 2 decimals. Rates are percentages
    rounded to 1 decimal, or None when their denominator is zero.
    """

    # Active state
    annual_active_count: int
    trialing_subscriptions_count: int
    trials_active_count: int
    annual_expiring_next_30d_count: int
    at_risk_annual_count: int
    revenue_at_risk_next_30d: float

    # Churn
    annual_churn_90d_count: int
    annual_churn_rate_90d: float | None

    # Conversion
    conversions_trial_to_annual_last_30d: int
    conversions_trial_to_annual_all_time: int
    trials_ended_last_30d: int
    trials_ended_all_time: int
    trial_cohort_all_time: int
    conversion_rate_last_30d: float | None
    conversion_rate_all_time: float | None
    trial_dropoff_last_30d: float | None
    trial_dropoff_all_time: float | None

    # Revenue
    revenue_net_all_time: float
    revenue_net_last_30d: float
    annual_revenue_net_all_time: float
    annual_revenue_net_last_30d: float
    revenue_from_conversions_all_time: float
    revenue_from_conversions_last_30d: float
    revenue_from_direct_annual_all_time: float
    revenue_from_direct_annual_last_30d: float
    arr: float
    opportunity_revenue_gross: float
    opportunity_revenue_net_estimate: float

    # Membership invoices only: annual and trial prices
    revenue_summary: RevenueSummary = Field(default_factory=RevenueSummary)
    # Oldest day first, one entry per UTC day
    revenue_series_30d: list[DailyRevenue] = Field(default_factory=list)

    # Diagnostics
    paid_annual_invoices_count_all_time: int
    non_settlement_invoices_count: int
    unresolved_conversions_count: int
    invoices_scanned: int
    currency: str
    stripe_key_mode: str
    generated_at: datetime
    stale: bool = False
