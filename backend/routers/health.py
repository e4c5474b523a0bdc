# app/routers/health.py
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

import config
from logging_setup import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()


@router.get("/teste", response_class=PlainTextResponse)
def teste():
    logger.info("/teste endpoint hit")
    return "Bem-vindo ao servidor de API"


@router.get("/health")
def health():
    logger.info("Health check")
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": time.monotonic() - STARTED_AT,
        "environment": config.ENVIRONMENT,
    }
