"""
Pytest Configuration and Fixtures

Shared fixtures for the report renderer and the HTTP proxy tests.
"""
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import pytest

# Modules live flat under backend/, as when running `uvicorn main:app` there
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

os.environ.setdefault("KEEPALIVE_ENABLED", "false")
os.environ.setdefault("API_BASE_URL", "http://upstream.test/v1")

from models import RelativeRecord, ReportRequest  # noqa: E402

UPSTREAM_BASE = "http://upstream.test/v1"


@pytest.fixture
def maria_request() -> ReportRequest:
    """The reference example: one affected relative, referral criteria met."""
    return ReportRequest(
        subject_name="Maria",
        subject_age=54,
        personal_history="breast cancer at 48",
        relatives=[
            RelativeRecord(relation="mother", cancer_type="breast cancer", age_at_diagnosis=50),
        ],
        meets_referral_criteria=True,
    )


@pytest.fixture
def relative():
    """Factory for RelativeRecord with sensible defaults."""
    def _make(relation: str, cancer_type: str = "breast cancer", age: int = 50) -> RelativeRecord:
        return RelativeRecord(relation=relation, cancer_type=cancer_type, age_at_diagnosis=age)
    return _make


@pytest.fixture
def api_client():
    """Async client for the app with the upstream API replaced by ``handler``.

    ``handler`` receives an ``httpx.Request`` and returns an ``httpx.Response``,
    as for ``httpx.MockTransport``.
    """
    from main import app
    from upstream import UpstreamAPI, get_upstream

    @asynccontextmanager
    async def _client(handler=None):
        upstream = None
        if handler is not None:
            upstream = UpstreamAPI(
                httpx.AsyncClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(handler))
            )
            app.dependency_overrides[get_upstream] = lambda: upstream
        try:
            async with httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app),
                base_url="http://test",
            ) as client:
                yield client
        finally:
            app.dependency_overrides.clear()
            if upstream is not None:
                await upstream.aclose()

    return _client
