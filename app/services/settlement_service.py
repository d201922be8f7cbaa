from datetime import datetime
from typing import Any, Optional, Union
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from app.config import settings
from app.db.execution import RequestDeadline
from app.schemas.auth_schema import Principal
from app.schemas.settlement_schema import (
    SettlementFilter, SettlementListQuery, SettlementListResult, SettlementOut, SettlementStats,
    WeeklyPayoutSummary,
)
from app.services.auth.authorization import resolve_scope
from app.services.errors import ValidationError
from app.services import settlement_repository
from app.services.settlement_stats import aggregate_settlement_stats, aggregate_weekly_payouts


def build_list_query(
    filter: Union[SettlementFilter, dict, None] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> SettlementListQuery:
    """Validate raw listing parameters"""
    page_size = page_size if page_size is not None else settings.default_page_size
    try:
        list_query = SettlementListQuery(
            filter=filter if filter is not None else SettlementFilter(),
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid listing parameters: {e.errors(include_url=False)}") from e

    if list_query.page_size > settings.max_page_size:
        raise ValidationError(f"page_size must not exceed {settings.max_page_size}")
    return list_query


def list_settlements(
    db: Session,
    principal: Optional[Principal],
    filter: Union[SettlementFilter, dict, None] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementListResult:
    """List the caller's settlements (all settlements for admins)"""
    scope = resolve_scope(principal)
    list_query = build_list_query(filter, page, page_size, sort_by, sort_order)
    return settlement_repository.list_settlements(db, scope, list_query, now=now, deadline=deadline)


def get_settlement_stats(
    db: Session,
    principal: Optional[Principal],
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementStats:
    """Summary figures over the caller's settlements"""
    scope = resolve_scope(principal)
    return aggregate_settlement_stats(db, scope, now=now, deadline=deadline)


def get_weekly_payout_summary(
    db: Session,
    principal: Optional[Principal],
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> WeeklyPayoutSummary:
    """This week's scheduled payouts for the caller, with the change since last week"""
    scope = resolve_scope(principal)
    return aggregate_weekly_payouts(db, scope, now=now, deadline=deadline)


def get_settlement_detail(
    db: Session,
    principal: Optional[Principal],
    settlement_id: str,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
) -> SettlementOut:
    """Get one of the caller's settlements"""
    scope = resolve_scope(principal)
    return settlement_repository.get_settlement_by_id(db, scope, settlement_id, now=now, deadline=deadline)


def set_settlement_status(
    db: Session,
    principal: Optional[Principal],
    settlement_id: str,
    new_status,
    now: Optional[datetime] = None,
    deadline: Optional[RequestDeadline] = None,
    publisher: Optional[Any] = None,
) -> SettlementOut:
    """Manually mark one of the caller's settlements pending or completed"""
    scope = resolve_scope(principal)
    settlement = settlement_repository.update_settlement_status(
        db, scope, settlement_id, new_status, now=now, deadline=deadline
    )
    if publisher is not None:
        publisher.publish_settlement_status_changed(settlement)
    return settlement
