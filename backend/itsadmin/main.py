from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from itsadmin.api.v1.router import api_router
from itsadmin.config import APP_VERSION, settings
from itsadmin.core.logging_config import configure_logging
from itsadmin.core.metrics import app_info
from itsadmin.database import async_session, engine
from itsadmin.middleware.prometheus import PrometheusMiddleware
from itsadmin.models import Base
from itsadmin.services.editor_session import EditorRegistry
from itsadmin.services.filter_store import SqlFilterStore
from itsadmin.services.grant_details import GrantCacheRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)
    app_info.info({"version": APP_VERSION, "environment": settings.ENVIRONMENT})

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.platform_url = settings.PLATFORM_API_URL
    app.state.editor_registry = EditorRegistry(
        ttl_seconds=settings.SESSION_TTL_SECONDS, platform_url=settings.PLATFORM_API_URL
    )
    app.state.filter_store = SqlFilterStore(async_session)
    app.state.grant_caches = GrantCacheRegistry()
    logger.info("ItemTypeSet console started against %s", settings.PLATFORM_API_URL)

    yield

    # Drop in-flight editor sessions and their platform connections
    await app.state.editor_registry.close_all()
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    openapi_url="/api/openapi.json" if settings.ENVIRONMENT == "development" else None,
)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
