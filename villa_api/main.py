import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from villa_api.core.config import settings
from villa_api.core.logging import configure_logging
from villa_api.api.v1.api import api_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = [
    "http://127.0.0.1:3000", "http://localhost:3000",
]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

if settings.STRIPE_SANDBOX:
    logger.warning("STRIPE_SANDBOX is on: checkout sessions are fake and no card is charged")


@app.get("/health")
def health():
    return {"status": "ok"}
