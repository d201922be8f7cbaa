"""
Guarded execution of storage calls.

Every repository operation runs inside ``storage_call`` so that caller-supplied
deadlines and cancellation reach the database, and so that SQLAlchemy failures
are translated into the settlement error taxonomy in exactly one place.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from app.services.errors import Cancelled, SettlementError, StorageError, Timeout

logger = logging.getLogger(__name__)

_STATEMENT_TIMEOUT_MARKERS = (
    "statement timeout",
    "canceling statement",
    "querycanceled",
)


@dataclass
class RequestDeadline:
    """Absolute deadline (``time.monotonic()`` based) plus an optional cancel flag"""
    expires_at: float
    cancel_event: Optional[threading.Event] = field(default=None, compare=False)

    @classmethod
    def after(cls, seconds: float, cancel_event: Optional[threading.Event] = None) -> "RequestDeadline":
        return cls(expires_at=time.monotonic() + seconds, cancel_event=cancel_event)

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise Cancelled()
        if self.remaining() <= 0:
            raise Timeout()


def _is_statement_timeout(exc: OperationalError) -> bool:
    message = f"{type(exc.orig).__name__} {exc.orig}".lower()
    return any(marker in message for marker in _STATEMENT_TIMEOUT_MARKERS)


@contextmanager
def storage_call(db: Session, deadline: Optional[RequestDeadline] = None, operation: str = "storage call"):
    """Run a unit of repository work against ``db``.

    Raises:
        Cancelled / Timeout: deadline cancelled or expired, before or during the call
        StorageError: any other SQLAlchemy failure (the session is rolled back)
    """
    if deadline is not None:
        deadline.check()

    try:
        if deadline is not None and db.get_bind().dialect.name == "postgresql":
            budget_ms = max(int(deadline.remaining() * 1000), 1)
            db.execute(text(f"SET LOCAL statement_timeout = {budget_ms}"))
        yield
    except SettlementError:
        raise
    except PoolTimeoutError as e:
        db.rollback()
        logger.error(f"{operation} timed out waiting for a connection: {e}")
        raise Timeout() from e
    except OperationalError as e:
        db.rollback()
        if _is_statement_timeout(e):
            logger.error(f"{operation} exceeded its deadline: {e}")
            raise Timeout() from e
        logger.error(f"{operation} failed: {e}")
        raise StorageError() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{operation} failed: {e}")
        raise StorageError() from e
