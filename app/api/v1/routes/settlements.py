from datetime import date
from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session
from typing import Optional
from app.config import settings
from app.db.database import get_db
from app.db.execution import RequestDeadline
from app.schemas.auth_schema import Principal
from app.schemas.settlement_schema import (
    SettlementListResult, SettlementOut, SettlementStats, SettlementStatusUpdate, WeeklyPayoutSummary
)
from app.services.auth.jwt_handler import get_current_principal
from app.services.errors import Unauthenticated
from app.services.settlement_service import (
    get_settlement_detail, get_settlement_stats, get_weekly_payout_summary, list_settlements,
    set_settlement_status,
)

router = APIRouter(prefix="/settlements", tags=["settlements"])


def get_principal(access_token: Optional[str] = Header(None, description="Access token (without Bearer)")) -> Principal:
    """Resolve the calling principal from the JWT access token"""
    if not access_token:
        raise Unauthenticated()
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "", 1)
    principal = get_current_principal(access_token)
    if not principal:
        raise Unauthenticated()
    return principal


def get_request_deadline() -> RequestDeadline:
    return RequestDeadline.after(settings.request_timeout_seconds)


def get_event_publisher():
    """Settlement event producer, or None when messaging is disabled"""
    if not settings.enable_order_events:
        return None
    from app.rabbitmq.producer import get_rabbitmq_producer
    return get_rabbitmq_producer()


@router.get("", response_model=SettlementListResult)
def get_settlements_list(
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    order_id: Optional[str] = None,
    wholesaler_id: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    principal: Principal = Depends(get_principal),
    deadline: RequestDeadline = Depends(get_request_deadline),
    db: Session = Depends(get_db)
):
    """List settlements visible to the caller"""
    settlement_filter = {
        "status": status,
        "start_date": start_date,
        "end_date": end_date,
        "order_id": order_id,
        "wholesaler_id": wholesaler_id,
    }
    return list_settlements(
        db, principal,
        filter=settlement_filter,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
        deadline=deadline,
    )


@router.get("/stats", response_model=SettlementStats)
def get_settlements_stats(
    principal: Principal = Depends(get_principal),
    deadline: RequestDeadline = Depends(get_request_deadline),
    db: Session = Depends(get_db)
):
    """Get settlement summary figures for the caller"""
    return get_settlement_stats(db, principal, deadline=deadline)


@router.get("/stats/weekly", response_model=WeeklyPayoutSummary)
def get_settlements_weekly(
    principal: Principal = Depends(get_principal),
    deadline: RequestDeadline = Depends(get_request_deadline),
    db: Session = Depends(get_db)
):
    """Get this week's scheduled payouts compared with last week"""
    return get_weekly_payout_summary(db, principal, deadline=deadline)


@router.get("/{settlement_id}", response_model=SettlementOut)
def get_settlement(
    settlement_id: str,
    principal: Principal = Depends(get_principal),
    deadline: RequestDeadline = Depends(get_request_deadline),
    db: Session = Depends(get_db)
):
    """Get a settlement by ID"""
    return get_settlement_detail(db, principal, settlement_id, deadline=deadline)


@router.patch("/{settlement_id}/status", response_model=SettlementOut)
def update_settlement_status(
    settlement_id: str,
    update_data: SettlementStatusUpdate,
    principal: Principal = Depends(get_principal),
    deadline: RequestDeadline = Depends(get_request_deadline),
    publisher=Depends(get_event_publisher),
    db: Session = Depends(get_db)
):
    """Mark a settlement pending or completed"""
    return set_settlement_status(
        db, principal, settlement_id, update_data.status, deadline=deadline, publisher=publisher
    )
