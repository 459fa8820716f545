"""Tests for the HTTP API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from chainaudit.config import ChainAuditConfig
from chainaudit.web.app import create_app


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(ChainAuditConfig()))


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0"}


class TestTools:
    def test_list_tools(self, client: TestClient):
        response = client.get("/api/tools")
        assert response.status_code == 200
        by_name = {t["name"]: t for t in response.json()}
        assert set(by_name) == {"custom", "slither", "mythril"}
        assert by_name["custom"]["kind"] == "built-in"
        assert by_name["custom"]["available"] is True
        assert by_name["slither"]["kind"] == "external"


class TestAnalyze:
    def test_analyze(self, client: TestClient, vulnerable_token: str):
        response = client.post(
            "/api/analyze", json={"source": vulnerable_token, "tools": ["custom"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert [r["tool"] for r in data["results"]] == ["custom"]
        summary = data["consensus"]["summary"]
        assert summary["totalFindings"] == 7
        assert summary["bySeverity"]["CRITICAL"] == 1
        assert data["consensus"]["findings"][0]["type"] == "Reentrancy"

    def test_default_tools_from_config(self, client: TestClient, vulnerable_token: str):
        response = client.post("/api/analyze", json={"source": vulnerable_token})
        assert response.status_code == 200
        assert [r["tool"] for r in response.json()["results"]] == ["custom"]

    def test_empty_tool_list(self, client: TestClient):
        response = client.post("/api/analyze", json={"source": "contract A {}", "tools": []})
        assert response.status_code == 200
        assert response.json()["results"] == []

    def test_tools_as_string_rejected(self, client: TestClient):
        response = client.post(
            "/api/analyze", json={"source": "contract A {}", "tools": "custom"}
        )
        assert response.status_code == 422

    def test_missing_source_rejected(self, client: TestClient):
        response = client.post("/api/analyze", json={"tools": ["custom"]})
        assert response.status_code == 422

    def test_unknown_dedup_key(self, client: TestClient):
        response = client.post(
            "/api/analyze",
            json={"source": "contract A {}", "tools": ["custom"], "dedup_key": "bogus"},
        )
        assert response.status_code == 400
        assert "bogus" in response.json()["detail"]

    def test_garbage_source(self, client: TestClient):
        response = client.post(
            "/api/analyze",
            json={"source": "this is not valid solidity code", "tools": ["custom"]},
        )
        assert response.status_code == 200
        findings = response.json()["consensus"]["findings"]
        assert len(findings) == 1
        assert findings[0]["severity"] == "INFO"
