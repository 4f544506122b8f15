import json
import os
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# Fixed windows and no FHIR server for tests
os.environ["TIMELINE_VITAL_RECENT_HOURS"] = "6"
os.environ["TIMELINE_CLINICAL_EVENT_DAYS"] = "30"
os.environ["FHIR_BASE_URL"] = ""

from triage_timeline.main import app

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.fixture
def now() -> datetime:
    """Generation time the fixture bundle is written against."""
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def emergency_bundle() -> dict:
    """Mixed emergency-department bundle with good, stale and malformed entries."""
    return json.loads((DATA_DIR / "emergency_bundle.json").read_text(encoding="utf-8"))


@pytest.fixture
def client():
    """Provide a synchronous TestClient for HTTP endpoint tests."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client():
    """Provide an async httpx client for async HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
