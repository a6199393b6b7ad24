import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobelix.api.auth import router as auth_router
from jobelix.api.bot import router as bot_router
from jobelix.config import settings
from jobelix.database import init_db
from jobelix.errors import register_exception_handlers
from jobelix.services.user_cache import UserCache

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

user_cache = UserCache(
    ttl_seconds=settings.user_cache_ttl_seconds,
    sweep_interval_seconds=settings.user_cache_sweep_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    sweeper = asyncio.create_task(app.state.user_cache.run_sweeper())
    logger.info("Jobelix API started")
    yield
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper


app = FastAPI(title="Jobelix", version="0.1.0", lifespan=lifespan)
app.state.user_cache = user_cache

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url] if settings.app_url else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router, prefix="/api")
app.include_router(bot_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok"}
