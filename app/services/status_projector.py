"""
Effective settlement status.

Payouts are understood to happen once the scheduled payout day has passed, but
nothing writes that transition to storage. Every read path (list, detail, stats)
therefore derives the status it shows from this module, either per row with
``project`` or in SQL with ``effective_status_clause``; both encode the same rule:

    stored pending AND scheduled_payout_at < start of today  =>  completed
"""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import and_, or_
from app.models.settlements import Settlement, SettlementStatus
from app.schemas.settlement_schema import SettlementOut
from app.utils.time_utils import as_utc, start_of_today

logger = logging.getLogger(__name__)

_DATETIME_FIELDS = ("scheduled_payout_at", "completed_at", "created_at", "updated_at")


def is_payout_elapsed(status, scheduled_payout_at: Optional[datetime], cutoff: datetime) -> bool:
    return (
        status == SettlementStatus.pending
        and scheduled_payout_at is not None
        and as_utc(scheduled_payout_at) < cutoff
    )


def effective_status(status, scheduled_payout_at: Optional[datetime], now: datetime) -> SettlementStatus:
    if is_payout_elapsed(status, scheduled_payout_at, start_of_today(now)):
        return SettlementStatus.completed
    return SettlementStatus(status)


def project(settlement: Settlement, now: datetime) -> SettlementOut:
    """Display view of a stored settlement at ``now``; the stored row is left untouched"""
    view = SettlementOut.model_validate(settlement)
    view = view.model_copy(update={name: as_utc(getattr(view, name)) for name in _DATETIME_FIELDS})

    if is_payout_elapsed(view.status, view.scheduled_payout_at, start_of_today(now)):
        logger.debug(f"Settlement {view.id} payout date {view.scheduled_payout_at} elapsed, shown as completed")
        view = view.model_copy(update={
            "status": SettlementStatus.completed,
            "completed_at": view.completed_at or view.scheduled_payout_at,
            "auto_completed": True,
        })
    return view


def effective_status_clause(status: SettlementStatus, now: datetime):
    """SQL predicate selecting rows whose effective status at ``now`` is ``status``"""
    cutoff = start_of_today(now)
    if status == SettlementStatus.completed:
        return or_(
            Settlement.status == SettlementStatus.completed,
            and_(Settlement.status == SettlementStatus.pending, Settlement.scheduled_payout_at < cutoff),
        )
    return and_(Settlement.status == SettlementStatus.pending, Settlement.scheduled_payout_at >= cutoff)
