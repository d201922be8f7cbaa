import logging
from typing import Any, Dict, Optional
from app.db.database import SessionLocal
from app.rabbitmq.consumer import MessageOutcome
from app.services.errors import Cancelled, SettlementError, StorageError, Timeout, ValidationError
from app.services.settlement_creation import create_settlement_for_paid_order

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (StorageError, Timeout, Cancelled)


def handle_order_paid_message(
    message_data: Dict[str, Any],
    session_factory=SessionLocal,
    publisher: Optional[Any] = None,
) -> MessageOutcome:
    """Create the settlement for an ``order.paid`` message.

    Redelivered messages are harmless: the pipeline treats a duplicate order as
    already settled and the message is acked.
    """
    order_id = message_data.get("order_id")
    logger.info(f"Processing order.paid message for order {order_id}")

    db = session_factory()
    try:
        result = create_settlement_for_paid_order(db, message_data)
    except ValidationError:
        return MessageOutcome.reject
    except _TRANSIENT_ERRORS as e:
        logger.warning(f"Transient failure creating settlement for order {order_id}, requeueing: {e}")
        return MessageOutcome.requeue
    except SettlementError as e:
        logger.error(f"Settlement for order {order_id} could not be created: {e}")
        return MessageOutcome.reject
    finally:
        db.close()

    if result.created and publisher is not None:
        publisher.publish_settlement_created(result.settlement)
    return MessageOutcome.ack
