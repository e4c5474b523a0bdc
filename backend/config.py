# app/config.py
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


BASE_DIR = Path(__file__).resolve().parent

API_BASE_URL = os.getenv("API_BASE_URL", "http://217.196.61.218:8080/v1").rstrip("/")
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))

PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Keep-alive for the free hosting tier, which idles services without traffic
RENDER_EXTERNAL_URL = os.getenv("RENDER_EXTERNAL_URL")
KEEPALIVE_ENABLED = _env_bool("KEEPALIVE_ENABLED", True)
PING_INTERVAL_SECONDS = float(os.getenv("PING_INTERVAL_SECONDS", "900"))
DEFAULT_PING_URL = "https://testserver-2p40.onrender.com/teste"

CORS_ORIGINS = _env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:5173",
        "https://raizesfront.vercel.app",
        "https://raizeshistoriafamiliar.vercel.app",
        "https://raizesteste.vercel.app",
    ],
)

REPORT_ASSETS_DIR = Path(os.getenv("REPORT_ASSETS_DIR", str(BASE_DIR / "assets")))
REPORT_FONT_REGULAR = os.getenv("REPORT_FONT_REGULAR", "Vera.ttf")
REPORT_FONT_BOLD = os.getenv("REPORT_FONT_BOLD", "VeraBd.ttf")


def ping_url() -> str:
    if RENDER_EXTERNAL_URL:
        return f"{RENDER_EXTERNAL_URL.rstrip('/')}/health"
    return DEFAULT_PING_URL


def create_app(lifespan=None) -> FastAPI:
    app = FastAPI(title="Raizes API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )
    return app
