"""
Tests for the effective-status projection.
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.models.settlements import Settlement, SettlementStatus
from app.services.status_projector import effective_status, project
from app.utils.time_utils import as_utc, start_of_today, start_of_week
from app.tests.conftest import NOW, TODAY_START, YESTERDAY, NEXT_WEEK


def build_settlement(status=SettlementStatus.pending, scheduled_payout_at=NEXT_WEEK, completed_at=None):
    return Settlement(
        id="s-1",
        order_id="order-1",
        wholesaler_id="w-1",
        order_amount=100000,
        platform_fee_rate=Decimal("0.05"),
        platform_fee=5000,
        wholesaler_amount=95000,
        status=status,
        scheduled_payout_at=scheduled_payout_at,
        completed_at=completed_at,
        created_at=NOW - timedelta(days=10),
        updated_at=NOW - timedelta(days=10),
    )


@pytest.mark.unit
class TestProject:

    def test_elapsed_pending_is_shown_completed(self):
        settlement = build_settlement(scheduled_payout_at=YESTERDAY)

        view = project(settlement, NOW)

        assert view.status == SettlementStatus.completed
        assert view.completed_at == YESTERDAY
        assert view.auto_completed is True
        # stored record is untouched
        assert settlement.status == SettlementStatus.pending
        assert settlement.completed_at is None

    def test_future_payout_stays_pending(self):
        view = project(build_settlement(scheduled_payout_at=NEXT_WEEK), NOW)
        assert view.status == SettlementStatus.pending
        assert view.completed_at is None
        assert view.auto_completed is False

    def test_payout_earlier_today_is_not_elapsed(self):
        """Only payouts before the start of today count as elapsed."""
        view = project(build_settlement(scheduled_payout_at=TODAY_START), NOW)
        assert view.status == SettlementStatus.pending

        view = project(build_settlement(scheduled_payout_at=TODAY_START - timedelta(microseconds=1)), NOW)
        assert view.status == SettlementStatus.completed

    def test_stored_completed_is_unchanged(self):
        completed_at = YESTERDAY - timedelta(days=2)
        settlement = build_settlement(
            status=SettlementStatus.completed, scheduled_payout_at=YESTERDAY, completed_at=completed_at
        )

        view = project(settlement, NOW)

        assert view.status == SettlementStatus.completed
        assert view.completed_at == completed_at
        assert view.auto_completed is False

    def test_existing_completed_at_is_kept(self):
        completed_at = YESTERDAY - timedelta(hours=5)
        settlement = build_settlement(scheduled_payout_at=YESTERDAY, completed_at=completed_at)

        view = project(settlement, NOW)

        assert view.completed_at == completed_at

    def test_naive_datetimes_are_read_as_utc(self):
        settlement = build_settlement(scheduled_payout_at=YESTERDAY.replace(tzinfo=None))

        view = project(settlement, NOW)

        assert view.status == SettlementStatus.completed
        assert view.scheduled_payout_at.tzinfo is not None
        assert view.completed_at == YESTERDAY


@pytest.mark.unit
class TestEffectiveStatus:

    def test_matches_projection(self):
        for scheduled in (YESTERDAY, TODAY_START, NEXT_WEEK):
            settlement = build_settlement(scheduled_payout_at=scheduled)
            assert effective_status(settlement.status, scheduled, NOW) == project(settlement, NOW).status

    def test_completed_stays_completed(self):
        assert effective_status(SettlementStatus.completed, NEXT_WEEK, NOW) == SettlementStatus.completed


@pytest.mark.unit
class TestTimeUtils:

    def test_start_of_today_utc(self):
        assert start_of_today(NOW, "UTC") == TODAY_START

    def test_start_of_today_in_settlement_timezone(self):
        # 16:00 UTC on the 15th is already 01:00 on the 16th in Seoul
        now = datetime(2025, 3, 15, 16, 0, tzinfo=timezone.utc)
        assert start_of_today(now, "Asia/Seoul") == datetime(2025, 3, 15, 15, 0, tzinfo=timezone.utc)

    def test_start_of_week_is_monday(self):
        monday = datetime(2025, 3, 10, tzinfo=timezone.utc)
        assert start_of_week(NOW, "UTC") == monday
        assert start_of_week(monday, "UTC") == monday
        assert start_of_week(monday - timedelta(microseconds=1), "UTC") == monday - timedelta(days=7)
        assert start_of_week(NOW, "UTC", weeks=1) == monday + timedelta(days=7)
        assert start_of_week(NOW, "UTC", weeks=-1) == monday - timedelta(days=7)

    def test_start_of_week_in_settlement_timezone(self):
        # Sunday 16:00 UTC is already Monday 01:00 in Seoul
        now = datetime(2025, 3, 16, 16, 0, tzinfo=timezone.utc)
        assert start_of_week(now, "Asia/Seoul") == datetime(2025, 3, 16, 15, 0, tzinfo=timezone.utc)

    def test_as_utc(self):
        assert as_utc(None) is None
        assert as_utc(datetime(2025, 1, 1)) == datetime(2025, 1, 1, tzinfo=timezone.utc)
        kst = timezone(timedelta(hours=9))
        assert as_utc(datetime(2025, 1, 1, 9, tzinfo=kst)) == datetime(2025, 1, 1, tzinfo=timezone.utc)
