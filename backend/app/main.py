import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from app.api.v1.router import api_v1_router
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.credits import RealtimeNotifier, StoreUnavailableError, ToolCostCatalog

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tool costs load lazily on first lookup
    app.state.tool_cost_catalog = ToolCostCatalog(session_factory=SessionLocal)
    app.state.notifier = RealtimeNotifier(max_queue_size=settings.REALTIME_QUEUE_SIZE)

    logger.info("Credits ledger initialized (realtime queue size=%d)", settings.REALTIME_QUEUE_SIZE)

    yield

    logger.info("Shutting down credits ledger...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error("Store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    logger.error("Database error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Credits store unavailable, retry later"})


@app.get("/health")
def health_check():
    return {"status": "healthy"}
