from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from app.models.settlements import SettlementStatus


class SettlementSortBy(str, Enum):
    created_at = "created_at"
    scheduled_payout_at = "scheduled_payout_at"
    order_amount = "order_amount"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class SettlementBase(BaseModel):
    order_id: str
    wholesaler_id: str
    order_amount: int = Field(..., ge=0)
    platform_fee_rate: Decimal
    platform_fee: int
    wholesaler_amount: int


class SettlementOut(SettlementBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: SettlementStatus
    scheduled_payout_at: datetime
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    # True when the status shown is derived from an elapsed payout date, not stored
    auto_completed: bool = False


class SettlementFilter(BaseModel):
    status: Optional[SettlementStatus] = None
    start_date: Optional[date] = None  # scheduled payout on or after this day
    end_date: Optional[date] = None  # scheduled payout on or before this day (whole day)
    order_id: Optional[str] = None
    wholesaler_id: Optional[str] = None

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class SettlementListQuery(BaseModel):
    filter: SettlementFilter = Field(default_factory=SettlementFilter)
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1)
    sort_by: SettlementSortBy = SettlementSortBy.created_at
    sort_order: SortOrder = SortOrder.desc


class SettlementListResult(BaseModel):
    settlements: List[SettlementOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class SettlementStats(BaseModel):
    total_amount: int = 0
    total_platform_fee: int = 0
    total_wholesaler_amount: int = 0
    total_order_amount: int = 0
    pending_amount: int = 0
    pending_count: int = 0
    completed_amount: int = 0
    completed_count: int = 0
    auto_completed_count: int = 0


class WeeklyPayoutSummary(BaseModel):
    """Payouts scheduled in the current week (Monday to Sunday) against the week before"""
    week_start: datetime
    week_end: datetime  # exclusive
    weekly_settlement_amount: int = 0
    weekly_pending_amount: int = 0
    last_week_settlement_amount: int = 0
    weekly_settlement_trend: Optional[float] = None  # percent change; None when there is nothing to compare


class SettlementStatusUpdate(BaseModel):
    status: SettlementStatus


class PaidOrderEvent(BaseModel):
    """Order that reached the paid state, as emitted by the payment pipeline"""
    order_id: str = Field(..., min_length=1)
    wholesaler_id: str = Field(..., min_length=1)
    order_amount: int = Field(..., ge=0)
    paid_at: datetime


class SettlementCreationResult(BaseModel):
    settlement: SettlementOut
    created: bool


class BackfillReport(BaseModel):
    created: int = 0
    existing: int = 0
    failed_order_ids: List[str] = []
