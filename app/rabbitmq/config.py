from pydantic_settings import BaseSettings, SettingsConfigDict


class RabbitMQConfig(BaseSettings):
    """RabbitMQ connection and topology settings (RABBITMQ_* environment variables)"""
    model_config = SettingsConfigDict(env_prefix="RABBITMQ_", env_file=".env", extra="ignore")

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    virtual_host: str = "/"
    heartbeat: int = 60
    blocked_connection_timeout: int = 300
    prefetch_count: int = 10

    # Inbound: paid orders from the payment pipeline
    orders_exchange: str = "orders"
    order_paid_routing_key: str = "order.paid"
    order_paid_queue: str = "settlement.order_paid.queue"

    # Outbound: settlement lifecycle notifications
    settlements_exchange: str = "settlements"
    settlement_created_key: str = "settlement.created"
    settlement_status_changed_key: str = "settlement.status_changed"


rabbitmq_config = RabbitMQConfig()
