import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from app.db.execution import RequestDeadline
from app.models.settlements import SettlementStatus
from app.schemas.settlement_schema import SettlementStats, WeeklyPayoutSummary
from app.services.auth.authorization import Scope
from app.services.settlement_repository import get_scoped_rows
from app.services.status_projector import is_payout_elapsed
from app.utils.time_utils import start_of_today, start_of_week, utcnow

logger = logging.getLogger(__name__)


def aggregate_settlement_stats(
    db: Session,
    scope: Scope,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementStats:
    """
    Summary amounts and counts for every settlement in ``scope``.

    Each row is classified by its effective status at ``now`` (the same rule the
    list view filters with), so the pending/completed figures always match what
    a status-filtered listing reports.
    """
    cutoff = start_of_today(now or utcnow())
    stats = SettlementStats()

    for row in get_scoped_rows(db, scope, deadline):
        wholesaler_amount = row.wholesaler_amount or 0
        elapsed = is_payout_elapsed(row.status, row.scheduled_payout_at, cutoff)

        if row.status == SettlementStatus.completed or elapsed:
            stats.completed_amount += wholesaler_amount
            stats.completed_count += 1
            if elapsed:
                stats.auto_completed_count += 1
        else:
            stats.pending_amount += wholesaler_amount
            stats.pending_count += 1

        stats.total_platform_fee += row.platform_fee or 0
        stats.total_order_amount += row.order_amount or 0

    stats.total_wholesaler_amount = stats.pending_amount + stats.completed_amount
    stats.total_amount = stats.total_wholesaler_amount

    logger.info(
        f"Settlement stats for {scope}: pending={stats.pending_count}/{stats.pending_amount} "
        f"completed={stats.completed_count}/{stats.completed_amount} "
        f"auto-completed={stats.auto_completed_count}"
    )
    return stats


def _stored_pending_amount(rows) -> int:
    return sum(row.wholesaler_amount or 0 for row in rows if row.status == SettlementStatus.pending)


def weekly_settlement_trend(this_week: int, last_week: int) -> Optional[float]:
    """Percent change against last week; a first week with payouts counts as +100%"""
    if last_week > 0:
        return (this_week - last_week) / last_week * 100
    if this_week > 0:
        return 100.0
    return None


def aggregate_weekly_payouts(
    db: Session,
    scope: Scope,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> WeeklyPayoutSummary:
    """
    Amounts still marked pending whose payout is scheduled this calendar week,
    compared with the same figure for last week.

    ``weekly_settlement_amount`` counts the stored state, so a payout already
    made earlier this week stays in the weekly total; ``weekly_pending_amount``
    is the part still pending at ``now`` under the effective-status rule.
    """
    now = now or utcnow()
    cutoff = start_of_today(now)
    week_start = start_of_week(now)
    week_end = start_of_week(now, weeks=1)
    last_week_start = start_of_week(now, weeks=-1)

    this_week_rows = get_scoped_rows(db, scope, deadline, payout_from=week_start, payout_before=week_end)
    last_week_rows = get_scoped_rows(db, scope, deadline, payout_from=last_week_start, payout_before=week_start)

    summary = WeeklyPayoutSummary(week_start=week_start, week_end=week_end)
    summary.weekly_settlement_amount = _stored_pending_amount(this_week_rows)
    summary.weekly_pending_amount = sum(
        row.wholesaler_amount or 0
        for row in this_week_rows
        if row.status == SettlementStatus.pending
        and not is_payout_elapsed(row.status, row.scheduled_payout_at, cutoff)
    )
    summary.last_week_settlement_amount = _stored_pending_amount(last_week_rows)
    summary.weekly_settlement_trend = weekly_settlement_trend(
        summary.weekly_settlement_amount, summary.last_week_settlement_amount
    )

    logger.info(
        f"Weekly payouts for {scope} from {week_start.date()}: "
        f"{summary.weekly_settlement_amount} (last week {summary.last_week_settlement_amount}, "
        f"trend {summary.weekly_settlement_trend})"
    )
    return summary
