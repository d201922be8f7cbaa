import logging
from fastapi import FastAPI
from app.config import settings
from app.db.database import Base, engine
from app.models import settlements  # noqa: F401  registers the settlements table
from app.api.v1.routes.settlements import router as settlements_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Settlement Service - Wholesale Marketplace",
    description="Computes platform fees, schedules payouts and tracks settlements for paid orders",
    version="1.0.0"
)

if settings.enable_order_events:
    from app.rabbitmq.setup import init_rabbitmq
    from app.rabbitmq.background_consumer import start_background_consumer

    # Initialize RabbitMQ
    init_rabbitmq()

    # Consume order.paid events and create settlements in the background
    start_background_consumer()

app.include_router(settlements_router)

@app.get("/")
def read_root():
    return {"message": "Settlement Service API", "version": "1.0.0"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
