"""Membership snapshot reads and plan summary parsing."""

from datetime import datetime, timezone

from src.modules.members.snapshot import MembershipSnapshotProvider, PlanSummary


class TestPlanSummary:
    def test_parses_iso_dates_and_aliases(self):
        summary = PlanSummary.from_json(
            {
                "status": "active",
                "plan_type": "Annual",
                "trial_end": "2025-05-01T00:00:00Z",
                "expiry_date": "2026-05-01T00:00:00+00:00",
                "subscription_id": "sub_1",
                "customer_id": "cus_1",
            }
        )

        assert summary.is_active is True
        assert summary.is_annual is True
        assert summary.trial_end == datetime(2025, 5, 1, tzinfo=timezone.utc)
        assert summary.current_period_end == datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert summary.stripe_subscription_id == "sub_1"
        assert summary.stripe_customer_id == "cus_1"

    def test_missing_or_bad_values(self):
        summary = PlanSummary.from_json({"trial_end": "not a date", "status": "TRIALING"})

        assert summary.trial_end is None
        assert summary.is_trialing is True
        assert summary.is_annual is False
        assert PlanSummary.from_json(None) == PlanSummary()


class TestMembershipSnapshotProvider:
    async def test_list_members_in_signup_order(self, db_session, member_factory):
        await member_factory.create_async(
            db_session,
            member_id="mem_late",
            created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
        )
        await member_factory.create_async(
            db_session,
            member_id="mem_early",
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

        members = await MembershipSnapshotProvider(db_session).list_members()

        assert [m.member_id for m in members] == ["mem_early", "mem_late"]
        assert members[0].signed_up_at == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert members[0].is_active_annual is True

    async def test_find_by_email_is_case_insensitive(self, db_session, member_factory):
        await member_factory.create_async(
            db_session, member_id="mem_1", email="Someone@Example.com"
        )
        provider = MembershipSnapshotProvider(db_session)

        found = await provider.find_by_email(" someone@example.COM ")

        assert found is not None
        assert found.member_id == "mem_1"
        assert await provider.find_by_email("nobody@example.com") is None

    async def test_find_by_customer_id(self, db_session, member_factory):
        await member_factory.create_async(
            db_session,
            member_id="mem_1",
            plan_summary={"plan_type": "annual", "stripe_customer_id": "cus_1"},
        )
        await member_factory.create_async(db_session, member_id="mem_2")
        provider = MembershipSnapshotProvider(db_session)

        found = await provider.find_by_customer_id("cus_1")

        assert found is not None
        assert found.member_id == "mem_1"
        assert await provider.find_by_customer_id("cus_missing") is None
