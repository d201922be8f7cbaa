import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.db.execution import RequestDeadline, storage_call
from app.models.settlements import Settlement, SettlementStatus
from app.schemas.settlement_schema import (
    SettlementFilter, SettlementListQuery, SettlementListResult, SettlementOut,
    SettlementSortBy, SortOrder
)
from app.services.auth.authorization import Scope, apply_scope, require_system_capability
from app.services.errors import Conflict, NotFound, StorageError, ValidationError
from app.services.status_projector import effective_status_clause, project
from app.utils.settlement_calc import calculate_fee, parse_rate
from app.utils.time_utils import as_utc, end_of_day_exclusive, start_of_day, utcnow

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SettlementSortBy.created_at: Settlement.created_at,
    SettlementSortBy.scheduled_payout_at: Settlement.scheduled_payout_at,
    SettlementSortBy.order_amount: Settlement.order_amount,
}


def _apply_filter(query, settlement_filter: SettlementFilter, now: datetime):
    if settlement_filter.status is not None:
        query = query.filter(effective_status_clause(settlement_filter.status, now))
    if settlement_filter.start_date is not None:
        query = query.filter(Settlement.scheduled_payout_at >= start_of_day(settlement_filter.start_date))
    if settlement_filter.end_date is not None:
        # end_date is inclusive of the whole day
        query = query.filter(Settlement.scheduled_payout_at < end_of_day_exclusive(settlement_filter.end_date))
    if settlement_filter.order_id:
        query = query.filter(Settlement.order_id == settlement_filter.order_id)
    if settlement_filter.wholesaler_id:
        query = query.filter(Settlement.wholesaler_id == settlement_filter.wholesaler_id)
    return query


def list_settlements(
    db: Session,
    scope: Scope,
    list_query: SettlementListQuery,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementListResult:
    """Paged, filtered, sorted settlements within ``scope``, with effective status applied"""
    now = now or utcnow()

    with storage_call(db, deadline, "list settlements"):
        query = apply_scope(db.query(Settlement), scope)
        query = _apply_filter(query, list_query.filter, now)

        total = query.count()

        sort_column = _SORT_COLUMNS[list_query.sort_by]
        primary = sort_column.asc() if list_query.sort_order == SortOrder.asc else sort_column.desc()
        # Ties fall back to insertion order
        rows = query.order_by(primary, Settlement.created_at.asc(), Settlement.id.asc())\
            .offset((list_query.page - 1) * list_query.page_size)\
            .limit(list_query.page_size)\
            .all()

    settlements = [project(row, now) for row in rows]
    total_pages = math.ceil(total / list_query.page_size) if total else 0

    logger.info(
        f"Listed {len(settlements)} of {total} settlements for {scope} "
        f"(page {list_query.page}/{total_pages}, "
        f"auto-completed {sum(1 for s in settlements if s.auto_completed)})"
    )
    return SettlementListResult(
        settlements=settlements,
        total=total,
        page=list_query.page,
        page_size=list_query.page_size,
        total_pages=total_pages,
    )


def get_settlement_by_id(
    db: Session,
    scope: Scope,
    settlement_id: str,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementOut:
    """Get a settlement by ID; missing and out-of-scope both raise NotFound"""
    with storage_call(db, deadline, "get settlement"):
        settlement = apply_scope(db.query(Settlement), scope)\
            .filter(Settlement.id == settlement_id)\
            .first()

    if not settlement:
        logger.warning(f"Settlement {settlement_id} not found within {scope}")
        raise NotFound()
    return project(settlement, now or utcnow())


def update_settlement_status(
    db: Session,
    scope: Scope,
    settlement_id: str,
    new_status,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementOut:
    """Explicit status transition; the UPDATE itself is restricted to ``scope``"""
    try:
        new_status = SettlementStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown settlement status: {new_status}")

    now = as_utc(now or utcnow())
    values = {
        "status": new_status,
        "completed_at": now if new_status == SettlementStatus.completed else None,
        "updated_at": now,
    }

    with storage_call(db, deadline, "update settlement status"):
        affected = apply_scope(db.query(Settlement), scope)\
            .filter(Settlement.id == settlement_id)\
            .update(values, synchronize_session=False)

        if affected == 0:
            db.rollback()
            logger.warning(f"Status update of settlement {settlement_id} affected no rows within {scope}")
            raise NotFound()

        # Re-read inside the same transaction so the statement budget still applies
        settlement = db.query(Settlement)\
            .filter(Settlement.id == settlement_id)\
            .populate_existing()\
            .first()
        view = project(settlement, now)
        db.commit()

    logger.info(f"Settlement {settlement_id} set to {new_status.value} (completed_at={values['completed_at']})")
    return view


def create_settlement(
    db: Session,
    capability,
    order_id: str,
    wholesaler_id: str,
    order_amount: int,
    platform_fee_rate: Decimal,
    scheduled_payout_at: datetime,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementOut:
    """Insert the settlement for an order; a second one for the same order raises Conflict"""
    require_system_capability(capability)

    try:
        rate = parse_rate(platform_fee_rate)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    now = as_utc(now or utcnow())
    fee = calculate_fee(order_amount, rate)

    settlement = Settlement(
        order_id=order_id,
        wholesaler_id=wholesaler_id,
        order_amount=order_amount,
        platform_fee_rate=rate,
        platform_fee=fee.platform_fee,
        wholesaler_amount=fee.wholesaler_amount,
        status=SettlementStatus.pending,
        scheduled_payout_at=as_utc(scheduled_payout_at),
        created_at=now,
        updated_at=now,
    )

    with storage_call(db, deadline, "create settlement"):
        db.add(settlement)
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            if _order_has_settlement(db, order_id):
                logger.warning(f"Settlement for order {order_id} already exists")
                raise Conflict() from e
            logger.error(f"Settlement for order {order_id} violates a storage constraint: {e.orig}")
            raise StorageError() from e
        view = project(settlement, now)
        db.commit()

    logger.info(
        f"Created settlement {view.id} for order {order_id}: "
        f"amount={order_amount} fee={fee.platform_fee} payout={fee.wholesaler_amount} "
        f"scheduled={view.scheduled_payout_at}"
    )
    return view


def get_settlement_by_order_id(
    db: Session,
    capability,
    order_id: str,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> Optional[SettlementOut]:
    """Cross-tenant lookup by order, reserved for the creation pipeline"""
    require_system_capability(capability)
    with storage_call(db, deadline, "get settlement by order"):
        settlement = db.query(Settlement).filter(Settlement.order_id == order_id).first()
    if not settlement:
        return None
    return project(settlement, now or utcnow())


def get_scoped_rows(
    db: Session,
    scope: Scope,
    deadline: Optional[RequestDeadline] = None,
    payout_from: Optional[datetime] = None,
    payout_before: Optional[datetime] = None,
) -> List:
    """Amount and status columns of every settlement in ``scope``, optionally within a payout window"""
    with storage_call(db, deadline, "read settlements for stats"):
        query = db.query(
            Settlement.status,
            Settlement.order_amount,
            Settlement.platform_fee,
            Settlement.wholesaler_amount,
            Settlement.scheduled_payout_at,
        )
        if payout_from is not None:
            query = query.filter(Settlement.scheduled_payout_at >= payout_from)
        if payout_before is not None:
            query = query.filter(Settlement.scheduled_payout_at < payout_before)
        return apply_scope(query, scope).all()


def _order_has_settlement(db: Session, order_id: str) -> bool:
    return db.query(Settlement.id).filter(Settlement.order_id == order_id).first() is not None
