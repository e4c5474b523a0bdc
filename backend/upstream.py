# app/upstream.py
import secrets
import string
import time
from typing import Any, Dict, Optional

import httpx

import config
from errors import UpstreamError
from logging_setup import get_logger

logger = get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}

UPSTREAM_FAILURE = {"error": "Erro ao fazer requisição para a API"}

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_request_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class UpstreamAPI:
    """Thin async client for the quiz/user REST API.

    Calls return the raw ``httpx.Response`` so each route can map upstream
    statuses its own way; only transport failures are raised, as UpstreamError.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @classmethod
    def from_config(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "UpstreamAPI":
        client = httpx.AsyncClient(
            base_url=config.API_BASE_URL,
            timeout=config.UPSTREAM_TIMEOUT_SECONDS,
            headers=JSON_HEADERS,
            transport=transport,
        )
        return cls(client)

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            response = await self.client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            url = f"{self.client.base_url}{path}"
            raise UpstreamError(f"{method} {path} failed: {e}", url=url) from e

        logger.debug(
            "Upstream responded",
            extra={"method": method, "path": path, "status": response.status_code},
        )
        return response

    # users

    async def save_user(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.request("POST", "/user/save-user", json=payload)

    async def login(self, email: str, senha: str) -> httpx.Response:
        return await self.request("GET", "/user/login", params={"email": email, "senha": senha})

    # quiz

    async def create_quiz(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.request("POST", "/quiz", json=payload)

    async def update_quiz(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.request("PUT", "/quiz", json=payload)

    async def check_quiz(self) -> httpx.Response:
        return await self.request("GET", "/quiz")

    async def get_patients(self, id_user: str) -> httpx.Response:
        return await self.request("GET", f"/quiz/getPacientes/{id_user}")

    async def get_quiz(self, id_quiz: str) -> httpx.Response:
        return await self.request("GET", f"/quiz/getQuiz/{id_quiz}")

    async def get_result(self, id_quiz: str, id_user: str) -> httpx.Response:
        return await self.request("GET", f"/quiz/resultado/{id_quiz}/{id_user}")

    async def aclose(self) -> None:
        await self.client.aclose()


_upstream: Optional[UpstreamAPI] = None


def get_upstream() -> UpstreamAPI:
    """FastAPI dependency; one shared client per process."""
    global _upstream
    if _upstream is None:
        _upstream = UpstreamAPI.from_config()
    return _upstream


async def close_upstream() -> None:
    global _upstream
    if _upstream is not None:
        await _upstream.aclose()
        _upstream = None
