import logging
import pika
from .config import rabbitmq_config, RabbitMQConfig

logger = logging.getLogger(__name__)


class RabbitMQSetup:
    """Creates connections and declares the exchanges and queues the service uses"""

    def __init__(self, config: RabbitMQConfig = rabbitmq_config):
        self.config = config

    def create_connection(self) -> pika.BlockingConnection:
        credentials = pika.PlainCredentials(self.config.username, self.config.password)
        parameters = pika.ConnectionParameters(
            host=self.config.host,
            port=self.config.port,
            virtual_host=self.config.virtual_host,
            credentials=credentials,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout,
        )
        return pika.BlockingConnection(parameters)

    def declare_topology(self, channel) -> None:
        channel.exchange_declare(exchange=self.config.orders_exchange, exchange_type="topic", durable=True)
        channel.exchange_declare(exchange=self.config.settlements_exchange, exchange_type="topic", durable=True)
        channel.queue_declare(queue=self.config.order_paid_queue, durable=True)
        channel.queue_bind(
            queue=self.config.order_paid_queue,
            exchange=self.config.orders_exchange,
            routing_key=self.config.order_paid_routing_key,
        )


def init_rabbitmq() -> None:
    """Declare exchanges and queues once at start-up"""
    setup = RabbitMQSetup()
    connection = None
    try:
        connection = setup.create_connection()
        setup.declare_topology(connection.channel())
        logger.info("RabbitMQ topology declared")
    except Exception as e:
        logger.error(f"Failed to initialize RabbitMQ: {e}")
        raise
    finally:
        if connection and not connection.is_closed:
            connection.close()
