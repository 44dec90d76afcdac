import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_id, configure_logging, get_logger
from app.db.init import init_db
from app.routers import admin, auth, contracts, deposits, earnings, plans, prices, withdrawals
from app.services.plans import seed_default_plans

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="MineVault API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
app.include_router(plans.router, prefix="/v1/plans", tags=["plans"])
app.include_router(prices.router, prefix="/v1/prices", tags=["prices"])
app.include_router(deposits.router, prefix="/v1/deposits", tags=["deposits"])
app.include_router(contracts.router, prefix="/v1/contracts", tags=["contracts"])
app.include_router(earnings.router, prefix="/v1/earnings", tags=["earnings"])
app.include_router(withdrawals.router, prefix="/v1/withdrawals", tags=["withdrawals"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await init_db()
    seeded = await seed_default_plans()
    log.info(
        "startup",
        msg="DB connected",
        plans_seeded=seeded,
        mining_currency=settings.mining_currency,
        accrual_period_seconds=settings.accrual_period_seconds,
    )


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
