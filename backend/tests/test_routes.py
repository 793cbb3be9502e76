"""HTTP route tests — FastAPI TestClient with the pipeline dependency overridden."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from ai_visibility.exceptions import ConfigurationError
from ai_visibility.main import app, lifespan
from ai_visibility.routers.visibility import get_pipeline
from ai_visibility.schemas.competitor_schema import Candidate, StrategyId
from ai_visibility.schemas.visibility_schema import DiscoveryResult, VisibilityRecord


# ---------------------------------------------------------------------------
# Fake pipeline
# ---------------------------------------------------------------------------

class FakePipeline:
    def __init__(self):
        self.discover_calls = []
        self.single_calls = []

    async def discover(self, entity, industry=None):
        self.discover_calls.append((entity, industry))
        if not entity.strip():
            raise ValueError("entity name must not be blank")
        return DiscoveryResult(
            target_entity=entity,
            competitors=[
                VisibilityRecord(entity_name=entity, citation_count=500, customer_rating=4.5, share_of_voice_percent=60),
                VisibilityRecord(entity_name="Bolt", share_of_voice_percent=40),
            ],
            candidates=[Candidate(name="Bolt", frequency=2, sources=frozenset({StrategyId.INDUSTRY_SEARCH}))],
        )

    async def analyze_single(self, company, industry=None):
        self.single_calls.append((company, industry))
        return VisibilityRecord(entity_name=company, citation_count=7)


fake_pipeline = FakePipeline()
client = TestClient(app)


@pytest.fixture(autouse=True)
def override_pipeline():
    app.dependency_overrides[get_pipeline] = lambda: fake_pipeline
    fake_pipeline.discover_calls.clear()
    fake_pipeline.single_calls.clear()
    yield
    app.dependency_overrides.pop(get_pipeline, None)


# ===================================================================
# General
# ===================================================================

class TestGeneral:

    def test_root(self):
        res = client.get("/")
        assert res.status_code == 200
        assert res.json()["name"] == "AI Visibility"

    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"


# ===================================================================
# GET /ai-visibility/{company}
# ===================================================================

class TestDiscover:

    def test_camel_case_result(self):
        res = client.get("/ai-visibility/Acme", params={"industry": "fintech"})
        assert res.status_code == 200

        data = res.json()
        assert data["targetEntity"] == "Acme"
        assert data["timedOut"] is False
        assert data["competitors"][0] == {
            "entityName": "Acme",
            "citationCount": 500,
            "customerRating": 4.5,
            "shareOfVoicePercent": 60.0,
        }
        assert data["competitors"][1]["citationCount"] is None
        assert data["candidates"][0]["name"] == "Bolt"
        assert data["candidates"][0]["sources"] == ["industry_search"]
        assert fake_pipeline.discover_calls == [("Acme", "fintech")]

    def test_industry_optional(self):
        res = client.get("/ai-visibility/Acme")
        assert res.status_code == 200
        assert fake_pipeline.discover_calls == [("Acme", None)]

    def test_blank_company_is_422(self):
        res = client.get("/ai-visibility/%20")
        assert res.status_code == 422


# ===================================================================
# POST /ai-visibility/analyze-competitor
# ===================================================================

class TestAnalyzeCompetitor:

    def test_single_company(self):
        res = client.post(
            "/ai-visibility/analyze-competitor",
            json={"companyName": "Bolt", "industry": "fintech"},
        )
        assert res.status_code == 200
        assert res.json()["entityName"] == "Bolt"
        assert res.json()["citationCount"] == 7
        assert fake_pipeline.single_calls == [("Bolt", "fintech")]

    def test_missing_company_name(self):
        res = client.post("/ai-visibility/analyze-competitor", json={"industry": "fintech"})
        assert res.status_code == 422


class TestUnconfigured:

    def test_no_pipeline_is_503(self):
        app.dependency_overrides.pop(get_pipeline, None)
        res = client.get("/ai-visibility/Acme")
        assert res.status_code == 503

    def test_startup_banner_reports_missing_keys(self, monkeypatch, caplog):
        for key in ("GOOGLE_API_KEY", "GOOGLE_CSE_ID", "PERPLEXITY_API_KEY"):
            monkeypatch.delenv(key, raising=False)

        async def boot():
            async with lifespan(app):
                pass

        with caplog.at_level(logging.INFO, logger="ai_visibility.main"):
            with pytest.raises(ConfigurationError):
                asyncio.run(boot())

        assert "Google Key:     Not set" in caplog.text
        assert "Perplexity Key: Not set" in caplog.text
        assert "Configured" not in caplog.text
