import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jevah.cache import cache
from jevah.config import settings
from jevah.errors import register_exception_handlers
from jevah.logging_config import setup_logging
from jevah.middleware import RequestContextMiddleware
from jevah.routers import (
    admin,
    audio,
    bookmarks,
    comments,
    forums,
    media,
    notifications,
    playback,
    polls,
    prayers,
    push,
    search,
    users,
)

VERSION = "1.0.0"

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The API runs without Redis; cache, rate limits and pub/sub degrade to no-ops.
    await cache.connect()
    logger.info("Jevah API %s started (%s)", VERSION, settings.APP_ENV)
    yield
    await cache.disconnect()


app = FastAPI(
    title="Jevah API",
    description="Community, media library and engagement API for the Jevah platform",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id", "x-response-time-ms", "x-query-count"],
)

register_exception_handlers(app)

for module in (
    users,
    admin,
    forums,
    polls,
    prayers,
    comments,
    bookmarks,
    media,
    audio,
    playback,
    notifications,
    push,
    search,
):
    app.include_router(module.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}
