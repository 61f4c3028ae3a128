from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from order_service.version import VERSION
from order_service.api import orders, reports, vouchers
from order_service.core.config import settings
from order_service.core.errors import OrderServiceError, Internal
from order_service.core.logging import configure_logging, get_logger
from prometheus_fastapi_instrumentator import Instrumentator

configure_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)
logger = get_logger(__name__)

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Order Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/order/metrics",
    should_gzip=True,
)

def _error_body(err: OrderServiceError) -> dict:
    return {"error": err.kind, "detail": err.detail}

@app.exception_handler(OrderServiceError)
async def order_service_error(request: Request, exc: OrderServiceError):
    if exc.status_code >= 500:
        logger.error("request.failed", method=request.method, path=request.url.path, error=exc.kind)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

@app.exception_handler(SQLAlchemyError)
async def store_error(request: Request, exc: SQLAlchemyError):
    logger.error("store.error", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=_error_body(Internal()))

@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.error("request.unhandled", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=_error_body(Internal()))

# Health endpoints
@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/order/health")
def order_health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "order", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            logger.debug("route.registered", methods=sorted(route.methods), path=route.path)

# Include routers
app.include_router(orders.router, prefix="/order", tags=["orders"])
app.include_router(vouchers.router, prefix="/order", tags=["vouchers"])
app.include_router(reports.router, prefix="/order", tags=["reports"])
