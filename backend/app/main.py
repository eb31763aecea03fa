from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from app.core.config import settings
from app.routers import (
    account_states,
    customers,
    dunning_campaigns,
    payment_failures,
    recovery_jobs,
)
from app.services.recovery_scheduler import RecoveryJobScheduler, SchedulerConfig

OPENAPI_TAGS = [
    {"name": "Customers", "description": "Create, read and update customers."},
    {
        "name": "Payment Failures",
        "description": "Ingest failed charges, inspect their recovery and retry them.",
    },
    {"name": "Dunning", "description": "Inspect dunning campaigns and their communications."},
    {
        "name": "Account States",
        "description": "Query account access posture, feature gates and manual overrides.",
    },
    {"name": "Recovery Jobs", "description": "Trigger and monitor the recovery background jobs."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler = RecoveryJobScheduler(SchedulerConfig.from_settings())
    app.state.recovery_scheduler = scheduler
    if scheduler.config.enabled:
        scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Payment recovery API. "
        "Classifies failed payments, schedules retries, runs dunning campaigns "
        "and degrades account access until the payment is recovered."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(customers.router, prefix="/v1/customers", tags=["Customers"])
app.include_router(
    payment_failures.router,
    prefix="/v1/payment_failures",
    tags=["Payment Failures"],
)
app.include_router(
    dunning_campaigns.router,
    prefix="/v1/dunning_campaigns",
    tags=["Dunning"],
)
app.include_router(
    account_states.router,
    prefix="/v1/account_states",
    tags=["Account States"],
)
app.include_router(
    recovery_jobs.router,
    prefix="/v1/recovery_jobs",
    tags=["Recovery Jobs"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
