"""
Unit Tests for the HTTP surface
Tests for: health, SSE fragment stream, full-document endpoint
"""
import json

import pytest
from httpx import AsyncClient

from pagecraft.main import app
from pagecraft.utils.llm_client import get_llm_client

from mocks.mock_llm import MockLLMClient


def sse_events(body: str):
    """Decode the data lines of an SSE body"""
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


class TestHealth:
    """Test liveness endpoints"""

    @pytest.mark.asyncio
    async def test_root_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness(self, client: AsyncClient):
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json()["protocol"] in ("marker", "jsonl")


class TestGenerateStream:
    """Test the Server-Sent Events endpoint"""

    @pytest.mark.asyncio
    async def test_fragments_then_complete(self, client: AsyncClient):
        response = await client.post("/api/v1/generate/stream", json={"input": "a calculator", "protocol": "jsonl"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = sse_events(response.text)
        fragments = [e["fragment"] for e in events if e["type"] == "fragment"]
        assert len(fragments) == 9
        assert fragments[0]["type"] == "header"
        assert {"type": "module", "id": "module0", "content": "height:80px;"} in fragments
        assert events[-1]["type"] == "complete"
        summary = events[-1]["summary"]
        assert summary["fragment_count"] == 9
        assert [m["status"] for m in summary["modules"]] == ["completed", "completed"]

    @pytest.mark.asyncio
    async def test_protocol_violation_reported_as_error_event(self, client: AsyncClient):
        broken = MockLLMClient(planner='{"type":"planModule","name":"x","layout":"a","description":"b"}\n')
        app.dependency_overrides[get_llm_client] = lambda: broken

        response = await client.post("/api/v1/generate/stream", json={"input": "x", "protocol": "jsonl"})

        events = sse_events(response.text)
        assert events[-1]["type"] == "error"
        assert events[-1]["error"]["code"] == "PROTOCOL_VIOLATION"

    @pytest.mark.asyncio
    async def test_empty_input_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/generate/stream", json={"input": ""})

        assert response.status_code == 422


class TestGeneratePage:
    """Test the full-document endpoint"""

    @pytest.mark.asyncio
    async def test_returns_html_and_summary(self, client: AsyncClient):
        response = await client.post("/api/v1/generate", json={"input": "a calculator", "protocol": "jsonl"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["html"].startswith("<!DOCTYPE html>")
        assert 'id="module1"' in body["html"]
        assert body["html"].count("<button") == 2
        assert body["summary"]["header"]["app_name"] == "calc"
        assert body["placeholders"] == []

    @pytest.mark.asyncio
    async def test_relax_root_height_override(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/generate",
            json={"input": "a calculator", "protocol": "jsonl", "relax_root_height": True},
        )

        assert "#app-root{width:400px;min-height:600px;" in response.json()["html"]

    @pytest.mark.asyncio
    async def test_aborted_request(self, client: AsyncClient):
        broken = MockLLMClient(planner='{"type":"planModule","name":"x","layout":"a","description":"b"}\n')
        app.dependency_overrides[get_llm_client] = lambda: broken

        response = await client.post("/api/v1/generate", json={"input": "x", "protocol": "jsonl"})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "PROTOCOL_VIOLATION"

    @pytest.mark.asyncio
    async def test_unknown_protocol_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/generate", json={"input": "x", "protocol": "xml"})

        assert response.status_code == 422
