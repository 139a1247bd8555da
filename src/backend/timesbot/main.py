from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timesbot.api.router import api_router
from timesbot.api.routes import report, slack
from timesbot.core.config import get_settings
from timesbot.core.logging import configure_logging
from timesbot.db.base import Base
from timesbot.db.session import get_engine

configure_logging()
settings = get_settings()
logger = logging.getLogger(__name__)

docs_url = "/docs" if settings.enable_swagger_ui else None
redoc_url = "/redoc" if settings.enable_redoc else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    import timesbot.models  # noqa: F401  # register tables on Base.metadata

    Base.metadata.create_all(get_engine())
    logger.info("Times bot ready (env=%s)", settings.env)
    yield


app = FastAPI(
    title="Times Bot",
    version="1.0.0",
    docs_url=docs_url,
    redoc_url=redoc_url,
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=f"/api/{settings.api_version}")
app.include_router(slack.router)
app.include_router(report.router)


@app.get("/healthz", tags=["health"], include_in_schema=False)
def healthz() -> dict[str, str]:
    return {"status": "ok"}
