from contextlib import asynccontextmanager

from fastapi import FastAPI
from .core.config import settings
from .core.cors import setup_cors
from .core.logging import get_logger, setup_logging
from .core.redis_manager import close_redis
from .api.v1.routers import games as games_router
from .api.v1.routers import multiplayer as multiplayer_router
from .api.v1.routers import ws_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("%s starting (%s)", settings.APP_NAME, settings.APP_ENV)
    yield
    await ws_router.shutdown_coordinator()
    await close_redis()
    logger.info("%s stopped", settings.APP_NAME)


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
setup_cors(app)

app.include_router(games_router.router, prefix=settings.API_V1_PREFIX)
app.include_router(multiplayer_router.router, prefix=settings.API_V1_PREFIX)

app.include_router(ws_router.ws_router)

@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
