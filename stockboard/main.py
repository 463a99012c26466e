"""
==============================================================================
FastAPI 앱 진입점 (main.py)
==============================================================================

실행:
    uvicorn stockboard.main:app --reload

==============================================================================
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from stockboard import __version__
from stockboard.config import get_settings
from stockboard.dependencies import get_services
from stockboard.routers import cron, health, logs, stocks

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "stockboard %s starting (store=%s, watch_list=%s)",
        __version__,
        settings.store_backend,
        ",".join(settings.watch_list_codes),
    )
    yield
    if get_services.cache_info().currsize:
        await get_services().aclose()
    logger.info("stockboard stopped")


app = FastAPI(title="stockboard", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list or ["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Cron-Secret"],
)

app.include_router(health.router)
app.include_router(stocks.router)
app.include_router(logs.router)
app.include_router(cron.router)


if __name__ == "__main__":
    uvicorn.run("stockboard.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
