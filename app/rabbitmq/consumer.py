import enum
import json
import logging
from typing import Any, Callable, Dict, Optional
import pika
from .config import rabbitmq_config
from .setup import RabbitMQSetup

logger = logging.getLogger(__name__)


class MessageOutcome(str, enum.Enum):
    ack = "ack"
    reject = "reject"  # drop, redelivery cannot help
    requeue = "requeue"  # transient failure, deliver again


class RabbitMQConsumer:
    """Consumes messages from RabbitMQ queues"""

    def __init__(self):
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        self.setup = RabbitMQSetup()

    def connect(self) -> None:
        """Establish connection to RabbitMQ"""
        try:
            self.connection = self.setup.create_connection()
            self.channel = self.connection.channel()
            self.setup.declare_topology(self.channel)
            self.channel.basic_qos(prefetch_count=rabbitmq_config.prefetch_count)
            logger.info("RabbitMQ consumer connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect RabbitMQ consumer: {e}")
            raise

    def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        if self.channel and not self.channel.is_closed:
            self.channel.close()
        if self.connection and not self.connection.is_closed:
            self.connection.close()
        logger.info("RabbitMQ consumer disconnected")

    def setup_consumer(self, queue: str, callback: Callable) -> None:
        if not self.connection or self.connection.is_closed:
            self.connect()
        self.channel.basic_consume(queue=queue, on_message_callback=callback, auto_ack=False)
        logger.info(f"Consumer registered on queue {queue}")

    def start_consuming(self) -> None:
        self.channel.start_consuming()

    def stop_consuming(self) -> None:
        if self.connection and not self.connection.is_closed:
            # Called from another thread; pika connections are not thread-safe
            self.connection.add_callback_threadsafe(self.channel.stop_consuming)


def create_order_paid_callback(handler: Callable[[Dict[str, Any]], MessageOutcome]) -> Callable:
    """Wrap a dict-level handler into a pika on_message callback with explicit ack/nack"""

    def on_message(channel, method, properties, body):
        try:
            message_data = json.loads(body)
        except (TypeError, ValueError) as e:
            logger.error(f"Discarding malformed order message: {e}")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
            return

        try:
            outcome = handler(message_data)
        except Exception as e:
            logger.error(f"Unhandled error processing order message {message_data.get('order_id')}: {e}")
            outcome = MessageOutcome.reject

        if outcome == MessageOutcome.ack:
            channel.basic_ack(delivery_tag=method.delivery_tag)
        else:
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=outcome == MessageOutcome.requeue)

    return on_message


# Global consumer instance
_rabbitmq_consumer: Optional[RabbitMQConsumer] = None


def get_rabbitmq_consumer() -> RabbitMQConsumer:
    """Get or create RabbitMQ consumer instance"""
    global _rabbitmq_consumer
    if _rabbitmq_consumer is None:
        _rabbitmq_consumer = RabbitMQConsumer()
    return _rabbitmq_consumer
