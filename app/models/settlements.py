import enum
import uuid
from sqlalchemy import Column, String, DateTime, Enum, BigInteger, Numeric, CheckConstraint, UniqueConstraint, Index
from app.db.database import Base


class SettlementStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


class Settlement(Base):
    __tablename__ = "settlements"
    __table_args__ = (
        # One settlement per order; this is what makes creation idempotent under races
        UniqueConstraint("order_id", name="uq_settlements_order_id"),
        CheckConstraint("order_amount >= 0", name="ck_settlements_order_amount_non_negative"),
        CheckConstraint("platform_fee >= 0", name="ck_settlements_platform_fee_non_negative"),
        CheckConstraint("platform_fee + wholesaler_amount = order_amount", name="ck_settlements_amounts_balance"),
        CheckConstraint("platform_fee_rate >= 0 AND platform_fee_rate <= 1", name="ck_settlements_fee_rate_range"),
        Index("ix_settlements_wholesaler_payout", "wholesaler_id", "scheduled_payout_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    order_id = Column(String, nullable=False)  # Reference to order service
    wholesaler_id = Column(String, nullable=False, index=True)  # Owning tenant
    order_amount = Column(BigInteger, nullable=False)
    platform_fee_rate = Column(Numeric(6, 4), nullable=False)  # Rate in effect at creation
    platform_fee = Column(BigInteger, nullable=False)
    wholesaler_amount = Column(BigInteger, nullable=False)
    status = Column(Enum(SettlementStatus), nullable=False, default=SettlementStatus.pending, index=True)
    scheduled_payout_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
