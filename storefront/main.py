import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from storefront.version import VERSION
from storefront.core.config import settings
from storefront.core.errors import StorefrontError
from storefront.api import products, coupons, cart, orders, admin_orders, inventory
from storefront.kafka import consumer as payment_consumer

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Storefront Order Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/storefront/metrics",
    should_gzip=True,
)

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

# Health endpoints
@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/storefront/health")
def storefront_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "storefront", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("%s %s", sorted(route.methods), route.path)
    payment_consumer.start()

@app.on_event("shutdown")
async def shutdown_event():
    payment_consumer.stop()

# Include routers
app.include_router(products.router, prefix="/public", tags=["catalog"])
app.include_router(coupons.router, prefix="/public", tags=["coupons"])
app.include_router(cart.router, tags=["cart"])
app.include_router(orders.router, prefix="/payment", tags=["orders"])
app.include_router(admin_orders.router, prefix="/admin", tags=["admin-orders"])
app.include_router(inventory.router, prefix="/admin", tags=["inventory"])
