"""
Pytest configuration and fixtures for settlement service tests.
"""
import itertools
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.models.settlements import Settlement, SettlementStatus
from app.schemas.auth_schema import Principal
from app.utils.settlement_calc import calculate_fee

# Fixed "now" used across tests: 2025-03-15 10:30 UTC
NOW = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)
TODAY_START = datetime(2025, 3, 15, tzinfo=timezone.utc)
YESTERDAY = TODAY_START - timedelta(days=1)
NEXT_WEEK = TODAY_START + timedelta(days=7)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin_principal():
    return Principal(principal_id="user-admin", role="admin")


@pytest.fixture
def wholesaler_principal():
    return Principal(principal_id="user-w1", role="wholesaler", linked_wholesaler_id="w-1")


@pytest.fixture
def other_wholesaler_principal():
    return Principal(principal_id="user-w2", role="wholesaler", linked_wholesaler_id="w-2")


@pytest.fixture
def unlinked_wholesaler_principal():
    return Principal(principal_id="user-w3", role="wholesaler")


@pytest.fixture
def retailer_principal():
    return Principal(principal_id="user-r1", role="retailer")


@pytest.fixture
def make_settlement(db_session):
    """Insert a settlement row directly, bypassing the creation pipeline."""
    counter = itertools.count()

    def _make(
        wholesaler_id="w-1",
        order_amount=100000,
        rate=Decimal("0.05"),
        status=SettlementStatus.pending,
        scheduled_payout_at=NEXT_WEEK,
        completed_at=None,
        order_id=None,
        created_at=None,
    ):
        n = next(counter)
        fee = calculate_fee(order_amount, rate)
        created = created_at or (NOW - timedelta(days=30) + timedelta(minutes=n))
        settlement = Settlement(
            order_id=order_id or f"order-{n}",
            wholesaler_id=wholesaler_id,
            order_amount=order_amount,
            platform_fee_rate=rate,
            platform_fee=fee.platform_fee,
            wholesaler_amount=fee.wholesaler_amount,
            status=status,
            scheduled_payout_at=scheduled_payout_at,
            completed_at=completed_at,
            created_at=created,
            updated_at=created,
        )
        db_session.add(settlement)
        db_session.commit()
        db_session.refresh(settlement)
        return settlement

    return _make


@pytest.fixture
def mixed_settlements(make_settlement):
    """
    Settlements for two wholesalers covering every effective state at NOW:

    w-1: pending (future), pending (payout elapsed), completed, pending (payout today)
    w-2: pending (future), completed
    """
    return [
        make_settlement("w-1", order_amount=100000, scheduled_payout_at=NEXT_WEEK),
        make_settlement("w-1", order_amount=20000, scheduled_payout_at=YESTERDAY),
        make_settlement(
            "w-1", order_amount=50000, status=SettlementStatus.completed,
            scheduled_payout_at=YESTERDAY - timedelta(days=3), completed_at=YESTERDAY - timedelta(days=2),
        ),
        make_settlement("w-1", order_amount=30000, scheduled_payout_at=TODAY_START + timedelta(hours=1)),
        make_settlement("w-2", order_amount=70000, scheduled_payout_at=NEXT_WEEK),
        make_settlement(
            "w-2", order_amount=10000, status=SettlementStatus.completed,
            scheduled_payout_at=YESTERDAY, completed_at=YESTERDAY,
        ),
    ]
