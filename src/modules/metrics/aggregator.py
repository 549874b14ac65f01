"""Fold ledger, refund and classification data into the published metrics."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.metrics.models import (
    DailyRevenue,
    MembershipMetrics,
    RevenuePeriod,
    RevenueSummary,
)
from src.core.base import BaseComponent
from src.modules.billing.constants import PricingConfig, SubscriptionState
from src.modules.billing.stripe.exceptions import LedgerReadError
from src.modules.billing.stripe.ledger import LedgerReader
from src.modules.billing.stripe.records import InvoiceRecord, SubscriptionRecord
from src.modules.billing.stripe.refunds import RefundResolver
from src.modules.events.store import EventHistoryStore
from src.modules.members.snapshot import MemberRow, MembershipSnapshotProvider
from src.modules.metrics.classifier import (
    ConversionRecord,
    ConversionSet,
    classify_conversions,
)
from src.utils.money import complement, major_float, percentage, scaled_major
from src.utils.settings.metrics import MetricsSettings
from src.utils.timestamps import utcnow


SUMMARY_WINDOWS = {"last_7d": 7, "last_30d": 30, "last_90d": 90}
SERIES_DAYS = 30


@dataclass
class _PeriodTotals:
    gross: int = 0
    net: int = 0
    paid_count: int = 0

    def add(self, gross: int, net: int) -> None:
        self.gross += gross
        self.net += net
        self.paid_count += 1

    def to_model(self) -> RevenuePeriod:
        return RevenuePeriod(
            gross=major_float(self.gross),
            refunds=major_float(self.gross - self.net),
            net=major_float(self.net),
            paid_count=self.paid_count,
        )


@dataclass
class _Revenue:
    """Running totals in minor units."""

    net_all_time: int = 0
    net_recent: int = 0
    annual_all_time: int = 0
    annual_recent: int = 0
    conversions_all_time: int = 0
    conversions_recent: int = 0
    direct_all_time: int = 0
    direct_recent: int = 0
    paid_annual_invoices: int = 0
    # Gross of the first paid annual invoice seen, discounts included
    annual_invoice_price: int | None = None
    membership: dict[str, _PeriodTotals] = field(
        default_factory=lambda: {
            name: _PeriodTotals() for name in ("all_time", *SUMMARY_WINDOWS)
        }
    )
    daily_net: dict[date, int] = field(default_factory=dict)

    def summary(self) -> RevenueSummary:
        return RevenueSummary(
            **{name: totals.to_model() for name, totals in self.membership.items()}
        )

    def series(self, now: datetime) -> list[DailyRevenue]:
        today = now.date()
        days = [today - timedelta(days=offset) for offset in range(SERIES_DAYS - 1, -1, -1)]
        return [
            DailyRevenue(date=day, net=major_float(self.daily_net.get(day, 0)))
            for day in days
        ]


def _subject_key(customer_id: str | None, fallback: str | None) -> str | None:
    """Count trials and conversions per customer where Stripe tells us one."""
    if customer_id:
        return f"customer:{customer_id}"
    return f"subscription:{fallback}" if fallback else None


class MetricsAggregator(BaseComponent):
    """One aggregation pass produces one ``MembershipMetrics``.

    All ledger reads must succeed for anything to be published: a
    ``LedgerReadError`` from any read, including refund lookups, propagates
    to the caller and no partial metrics are returned.
    """

    def __init__(
        self,
        reader: LedgerReader,
        session_factory: async_sessionmaker[AsyncSession],
        pricing: PricingConfig | None = None,
        settings: MetricsSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__()
        self.reader = reader
        self.session_factory = session_factory
        self.pricing = pricing or PricingConfig.from_settings()
        self.settings = settings or MetricsSettings()
        self.clock = clock

    async def compute(self) -> MembershipMetrics:
        started = time.perf_counter()
        now = self.clock()
        self.logger.info("Starting metrics aggregation")

        try:
            active, trialing, canceled, invoices = await asyncio.gather(
                asyncio.to_thread(self.reader.list_subscriptions, SubscriptionState.ACTIVE),
                asyncio.to_thread(self.reader.list_subscriptions, SubscriptionState.TRIALING),
                asyncio.to_thread(self.reader.list_subscriptions, SubscriptionState.CANCELED),
                asyncio.to_thread(self.reader.list_paid_invoices),
            )
        except LedgerReadError as e:
            self.logger.error("Metrics aggregation aborted", step=e.step, error=str(e))
            raise

        try:
            async with self.session_factory() as session:
                members = await MembershipSnapshotProvider(session).list_members()
                events = await EventHistoryStore(session, self.pricing).list_all()
        except SQLAlchemyError as e:
            self.logger.error("Metrics aggregation aborted", step="database", error=str(e))
            raise

        subscriptions = active + trialing + canceled
        conversions = classify_conversions(
            members, events, subscriptions, now=now, pricing=self.pricing
        )

        resolver = RefundResolver(
            self.pricing, page_size=self.reader.page_size
        )
        try:
            revenue = await asyncio.to_thread(
                self._fold_revenue, invoices, conversions, resolver, now
            )
        except LedgerReadError as e:
            self.logger.error("Metrics aggregation aborted", step=e.step, error=str(e))
            raise

        metrics = self._build(
            now=now,
            current=active + trialing,
            subscriptions=subscriptions,
            canceled=canceled,
            members=members,
            conversions=conversions,
            revenue=revenue,
            resolver=resolver,
            invoices_scanned=len(invoices),
        )
        self.logger.info(
            "Metrics aggregation finished",
            duration_ms=round((time.perf_counter() - started) * 1000),
            subscriptions=len(subscriptions),
            invoices=len(invoices),
            conversions=len(conversions),
            refund_lookups=resolver.refund_lookups,
        )
        return metrics

    def _recent_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.settings.METRICS_RECENT_WINDOW_DAYS)

    def _fold_revenue(
        self,
        invoices: list[InvoiceRecord],
        conversions: ConversionSet,
        resolver: RefundResolver,
        now: datetime,
    ) -> _Revenue:
        """Net revenue buckets; runs in a worker thread since refunds hit Stripe."""
        recent_cutoff = self._recent_cutoff(now)
        revenue = _Revenue()

        for invoice in invoices:
            if invoice.status != "paid":
                continue
            net = resolver.net_amount_minor(invoice)
            if not self.pricing.is_settlement_currency(invoice.currency):
                continue

            recent = invoice.created >= recent_cutoff
            revenue.net_all_time += net
            if recent:
                revenue.net_recent += net

            if invoice.contains_membership_price(self.pricing):
                self._add_membership(revenue, invoice, net, now)

            if not (
                invoice.is_first_invoice and invoice.contains_annual_price(self.pricing)
            ):
                continue

            if revenue.annual_invoice_price is None and invoice.amount_paid > 0:
                revenue.annual_invoice_price = invoice.amount_paid
            revenue.paid_annual_invoices += 1
            revenue.annual_all_time += net
            if recent:
                revenue.annual_recent += net

            if conversions.contains_invoice(invoice):
                revenue.conversions_all_time += net
                if recent:
                    revenue.conversions_recent += net
            else:
                revenue.direct_all_time += net
                if recent:
                    revenue.direct_recent += net

        return revenue

    @staticmethod
    def _add_membership(
        revenue: _Revenue, invoice: InvoiceRecord, net: int, now: datetime
    ) -> None:
        gross = max(invoice.amount_paid, 0)
        revenue.membership["all_time"].add(gross, net)
        for name, days in SUMMARY_WINDOWS.items():
            if invoice.created >= now - timedelta(days=days):
                revenue.membership[name].add(gross, net)
        day = invoice.created.date()
        revenue.daily_net[day] = revenue.daily_net.get(day, 0) + net

    def _annual_list_price(
        self, revenue: _Revenue, subscriptions: Iterable[SubscriptionRecord]
    ) -> int:
        """Opportunity price: paid annual invoice, then subscription price, then default."""
        if revenue.annual_invoice_price is not None:
            return revenue.annual_invoice_price
        for sub in subscriptions:
            for item in sub.items:
                if item.price_id in self.pricing.annual_price_ids and item.unit_amount:
                    return item.unit_amount
        return self.settings.METRICS_DEFAULT_ANNUAL_PRICE_MINOR

    def _build(
        self,
        *,
        now: datetime,
        current: list[SubscriptionRecord],
        subscriptions: list[SubscriptionRecord],
        canceled: list[SubscriptionRecord],
        members: list[MemberRow],
        conversions: ConversionSet,
        revenue: _Revenue,
        resolver: RefundResolver,
        invoices_scanned: int,
    ) -> MembershipMetrics:
        pricing = self.pricing
        lookahead_end = now + timedelta(days=self.settings.METRICS_LOOKAHEAD_DAYS)
        churn_start = now - timedelta(days=self.settings.METRICS_CHURN_WINDOW_DAYS)
        recent_cutoff = self._recent_cutoff(now)

        # Active state, one pass over active and trialing subscriptions
        annual_active = trialing = expiring = at_risk = 0
        at_risk_minor = arr_minor = 0
        annual_active_at_churn_start = 0
        for sub in current:
            if sub.is_trialing:
                trialing += 1
            if not (sub.is_active and sub.is_annual(pricing)):
                continue
            annual_active += 1
            arr_minor += sub.gross_amount
            if sub.created <= churn_start:
                annual_active_at_churn_start += 1
            period_end = sub.current_period_end
            if period_end is not None and now <= period_end <= lookahead_end:
                expiring += 1
                if sub.cancel_at_period_end:
                    at_risk += 1
                    at_risk_minor += sub.gross_amount

        trials_active = sum(
            1
            for member in members
            if member.plan.is_trialing
            and (member.plan.trial_end is None or member.plan.trial_end > now)
        )

        churned = sum(
            1
            for sub in canceled
            if sub.is_annual(pricing)
            and sub.ended_at is not None
            and churn_start <= sub.ended_at <= now
        )

        # Trial cohort and conversion rates
        cohort = [
            sub
            for sub in subscriptions
            if sub.is_trialing
            or sub.trial_ended_before(now)
            or sub.has_trial_price(pricing)
        ]
        ended = [
            sub for sub in cohort if sub.trial_end is not None and sub.trial_end <= now
        ]
        ended_recently = [sub for sub in ended if recent_cutoff <= sub.trial_end]
        trials_ended = len(ended)
        recent_conversions = [
            record
            for record in conversions.records
            if record.converted_at is not None
            and recent_cutoff <= record.converted_at <= now
        ]

        def cohort_keys(subs: Iterable[SubscriptionRecord]) -> set[str]:
            return {_subject_key(sub.customer_id, sub.id) for sub in subs}

        def conversion_keys(records: Iterable[ConversionRecord]) -> set[str]:
            keys = {_subject_key(r.customer_id, r.subscription_id) for r in records}
            keys.discard(None)
            return keys

        converted_all = conversion_keys(conversions.records)
        converted_recent = conversion_keys(recent_conversions)
        cohort_all = cohort_keys(cohort) | converted_all
        cohort_recent = cohort_keys(ended_recently) | converted_recent

        rate_recent = percentage(len(converted_recent), len(cohort_recent))
        rate_all = percentage(len(converted_all), len(cohort_all))

        opportunity_minor = trials_active * self._annual_list_price(revenue, current)

        return MembershipMetrics(
            annual_active_count=annual_active,
            trialing_subscriptions_count=trialing,
            trials_active_count=trials_active,
            annual_expiring_next_30d_count=expiring,
            at_risk_annual_count=at_risk,
            revenue_at_risk_next_30d=major_float(at_risk_minor),
            annual_churn_90d_count=churned,
            annual_churn_rate_90d=percentage(
                churned, annual_active_at_churn_start + churned
            ),
            conversions_trial_to_annual_last_30d=len(recent_conversions),
            conversions_trial_to_annual_all_time=len(conversions),
            trials_ended_last_30d=len(ended_recently),
            trials_ended_all_time=trials_ended,
            trial_cohort_all_time=len(cohort_all),
            conversion_rate_last_30d=rate_recent,
            conversion_rate_all_time=rate_all,
            trial_dropoff_last_30d=complement(rate_recent),
            trial_dropoff_all_time=complement(rate_all),
            revenue_net_all_time=major_float(revenue.net_all_time),
            revenue_net_last_30d=major_float(revenue.net_recent),
            annual_revenue_net_all_time=major_float(revenue.annual_all_time),
            annual_revenue_net_last_30d=major_float(revenue.annual_recent),
            revenue_from_conversions_all_time=major_float(revenue.conversions_all_time),
            revenue_from_conversions_last_30d=major_float(revenue.conversions_recent),
            revenue_from_direct_annual_all_time=major_float(revenue.direct_all_time),
            revenue_from_direct_annual_last_30d=major_float(revenue.direct_recent),
            arr=major_float(arr_minor),
            opportunity_revenue_gross=major_float(opportunity_minor),
            opportunity_revenue_net_estimate=scaled_major(
                opportunity_minor, self.settings.METRICS_FEE_FACTOR
            ),
            revenue_summary=revenue.summary(),
            revenue_series_30d=revenue.series(now),
            paid_annual_invoices_count_all_time=revenue.paid_annual_invoices,
            non_settlement_invoices_count=resolver.skipped_currency,
            unresolved_conversions_count=len(conversions.unresolved_members),
            invoices_scanned=invoices_scanned,
            currency=pricing.settlement_currency,
            stripe_key_mode=self.reader.key_mode,
            generated_at=now,
        )
