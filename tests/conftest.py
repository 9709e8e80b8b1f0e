"""
Shared fixtures: throwaway SQLite stores, settings, and a fake Gemini.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from services.config import Settings
from services.db import ScanStore
from services.gemini_client import GeminiClient

ANALYST_EMAIL = "analyst@phishguard.local"
ANALYST_PASSWORD = "s3cret-pass"


def gemini_body(text: str) -> dict:
    """Wrap candidate text the way generateContent does."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def verdict_json(**overrides) -> str:
    verdict = {
        "riskScore": 72,
        "classification": "Phishing",
        "explanation": "Credential harvesting attempt",
        "highlightedKeywords": ["verify"],
        "suspiciousLinks": ["http://evil.example"],
        "threats": ["Credential phishing"],
        "confidence": 0.9,
    }
    verdict.update(overrides)
    return json.dumps(verdict)


def gemini_transport(status_code=200, body=None, calls=None):
    """MockTransport that answers every request with the given response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=body or "")

    return httpx.MockTransport(handler)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        gemini_api_key="test-key",
        db_path=str(tmp_path / "phishguard.db"),
        accounts={ANALYST_EMAIL: ANALYST_PASSWORD},
    )


@pytest.fixture
def store(settings):
    s = ScanStore(settings.db_path)
    s.init_db()
    return s


@pytest.fixture
def failing_gemini(settings):
    return GeminiClient(settings, transport=gemini_transport(503, "unavailable"))


@pytest.fixture
def client(settings, failing_gemini):
    app = create_app(settings, ai_client=failing_gemini)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client):
    resp = client.post(
        "/auth/login",
        json={"email": ANALYST_EMAIL, "password": ANALYST_PASSWORD},
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
