import logging
from datetime import datetime
from typing import Iterable, Optional, Union
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from app.config import settings
from app.db.execution import RequestDeadline
from app.schemas.settlement_schema import BackfillReport, PaidOrderEvent, SettlementCreationResult
from app.services.auth.authorization import SystemCapability
from app.services.errors import Conflict, SettlementError, StorageError, ValidationError
from app.services.settlement_repository import create_settlement, get_settlement_by_order_id
from app.utils.settlement_calc import Rate, parse_rate, schedule_payout
from app.utils.time_utils import as_utc

logger = logging.getLogger(__name__)

# Settlement creation runs outside any wholesaler's request, so it writes with
# a cross-tenant capability that nothing else in the service is handed.
_PIPELINE_CAPABILITY = SystemCapability(holder="settlement-creation-pipeline")


def _validate_order(order: Union[PaidOrderEvent, dict]) -> PaidOrderEvent:
    if isinstance(order, PaidOrderEvent):
        return order
    try:
        return PaidOrderEvent.model_validate(order)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid paid order event: {e.errors()}") from e


def create_settlement_for_paid_order(
    db: Session,
    order: Union[PaidOrderEvent, dict],
    fee_rate: Optional[Rate] = None,
    payout_delay_days: Optional[int] = None,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementCreationResult:
    """
    Materialize the settlement for an order that reached the paid state.

    Safe to call more than once for the same order: a duplicate trigger returns
    the settlement that already exists with ``created=False``. Any other failure
    propagates, since a paid order without a settlement must not go unnoticed.
    """
    try:
        order = _validate_order(order)
        try:
            rate = parse_rate(fee_rate if fee_rate is not None else settings.platform_fee_rate)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        delay_days = payout_delay_days if payout_delay_days is not None else settings.payout_delay_days
        if delay_days < 0:
            raise ValidationError(f"Payout delay must not be negative, got {delay_days}")
    except ValidationError as e:
        logger.error(f"Rejected paid order event: {e.detail}")
        raise

    scheduled_payout_at = schedule_payout(as_utc(order.paid_at), delay_days)

    try:
        settlement = create_settlement(
            db,
            _PIPELINE_CAPABILITY,
            order_id=order.order_id,
            wholesaler_id=order.wholesaler_id,
            order_amount=order.order_amount,
            platform_fee_rate=rate,
            scheduled_payout_at=scheduled_payout_at,
            now=now,
            deadline=deadline,
        )
    except Conflict:
        existing = get_settlement_by_order_id(db, _PIPELINE_CAPABILITY, order.order_id, now=now, deadline=deadline)
        if existing is None:
            logger.error(f"Order {order.order_id} reported a duplicate settlement that cannot be read back")
            raise StorageError()
        logger.info(f"Duplicate paid trigger for order {order.order_id}; keeping settlement {existing.id}")
        return SettlementCreationResult(settlement=existing, created=False)
    except SettlementError as e:
        logger.error(f"Settlement for paid order {order.order_id} was not created: {e}")
        raise

    return SettlementCreationResult(settlement=settlement, created=True)


def backfill_settlements(
    db: Session,
    orders: Iterable[Union[PaidOrderEvent, dict]],
    fee_rate: Optional[Rate] = None,
    payout_delay_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> BackfillReport:
    """Create the missing settlements for a batch of paid orders"""
    report = BackfillReport()

    for order in orders:
        try:
            result = create_settlement_for_paid_order(
                db, order, fee_rate=fee_rate, payout_delay_days=payout_delay_days, now=now
            )
        except SettlementError:
            order_id = order.get("order_id") if isinstance(order, dict) else order.order_id
            report.failed_order_ids.append(str(order_id))
            continue

        if result.created:
            report.created += 1
        else:
            report.existing += 1

    logger.info(
        f"Settlement backfill finished: created={report.created} existing={report.existing} "
        f"failed={len(report.failed_order_ids)}"
    )
    if report.failed_order_ids:
        logger.error(f"Paid orders still missing a settlement: {report.failed_order_ids}")
    return report
