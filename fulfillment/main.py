import logging
from fastapi import FastAPI
from fulfillment.version import VERSION
from fulfillment.api.routes import router as shipping_router
from fulfillment.api.webhooks import router as webhook_router
from fulfillment.core.config import settings
from fulfillment.core.logging import configure_logging
from fulfillment.kafka import consumer as notifications_consumer
from fulfillment.kafka import producer as shipping_producer
from prometheus_fastapi_instrumentator import Instrumentator

logger = logging.getLogger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Fulfillment Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/shipping/metrics",
    should_gzip=True,
)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/shipping/health")
def shipping_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "fulfillment", "version": VERSION}

app.include_router(shipping_router, tags=["shipping"])
app.include_router(webhook_router, tags=["webhooks"])

@app.on_event("startup")
async def startup_event():
    configure_logging(settings.LOG_LEVEL)
    # Refuse to start without carrier credentials
    settings.require_carrier_key()
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("%s %s", route.methods, route.path)
    if settings.START_CONSUMER:
        notifications_consumer.start()

@app.on_event("shutdown")
async def shutdown_event():
    notifications_consumer.stop()
    shipping_producer.close()
