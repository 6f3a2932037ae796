import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.v1.api import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Expo dev server (native and web) when CORS_ORIGINS is unset
DEV_ORIGINS = ["http://localhost:8081", "http://localhost:19006"]


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(
        "%s starting (env=%s, vicinity gating %s, push %s)",
        settings.APP_NAME,
        settings.ENV,
        "on" if settings.VICINITY_FEATURE_ENABLED else "off",
        "on" if settings.NOTIFICATIONS_ENABLED else "off",
    )
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] or DEV_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.get("/health")
def health():
    return {"status": "ok"}
