import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import pika
from app.schemas.settlement_schema import SettlementOut
from .config import rabbitmq_config
from .setup import RabbitMQSetup

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """Handles publishing settlement events to RabbitMQ"""

    def __init__(self):
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        self.setup = RabbitMQSetup()

    def connect(self) -> None:
        """Establish connection to RabbitMQ"""
        try:
            self.connection = self.setup.create_connection()
            self.channel = self.connection.channel()
            logger.info("RabbitMQ producer connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect RabbitMQ producer: {e}")
            raise

    def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        if self.channel and not self.channel.is_closed:
            self.channel.close()
        if self.connection and not self.connection.is_closed:
            self.connection.close()
        logger.info("RabbitMQ producer disconnected")

    def _publish(self, routing_key: str, payload: Dict[str, Any], message_id: str) -> bool:
        """Publish one event; failures are logged and reported as False, never raised"""
        try:
            if not self.connection or self.connection.is_closed:
                self.connect()

            message_data = {
                **payload,
                "event": routing_key,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            self.channel.basic_publish(
                exchange=rabbitmq_config.settlements_exchange,
                routing_key=routing_key,
                body=json.dumps(message_data),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type='application/json',
                    message_id=message_id,
                )
            )
            logger.info(f"Published {routing_key} for settlement {message_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to publish {routing_key} for settlement {message_id}: {e}")
            return False

    def publish_settlement_created(self, settlement: SettlementOut) -> bool:
        """
        Publish a settlement.created event

        Args:
            settlement: The settlement that was just created

        Returns:
            bool: True if message published successfully, False otherwise
        """
        return self._publish(
            rabbitmq_config.settlement_created_key,
            settlement.model_dump(mode="json"),
            settlement.id,
        )

    def publish_settlement_status_changed(self, settlement: SettlementOut) -> bool:
        """Publish a settlement.status_changed event after a manual transition"""
        return self._publish(
            rabbitmq_config.settlement_status_changed_key,
            settlement.model_dump(mode="json"),
            settlement.id,
        )


# Global producer instance
_rabbitmq_producer: Optional[RabbitMQProducer] = None


def get_rabbitmq_producer() -> RabbitMQProducer:
    """Get or create RabbitMQ producer instance; it connects on first publish"""
    global _rabbitmq_producer
    if _rabbitmq_producer is None:
        _rabbitmq_producer = RabbitMQProducer()
    return _rabbitmq_producer


def close_rabbitmq_producer() -> None:
    """Close RabbitMQ producer connection"""
    global _rabbitmq_producer
    if _rabbitmq_producer:
        _rabbitmq_producer.disconnect()
        _rabbitmq_producer = None
