"""
PageCraft - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['ANTHROPIC_API_KEY'] = 'test-api-key'
os.environ['SAVE_OUTPUT'] = 'false'
os.environ['VALIDATE_CLAUDE_ON_STARTUP'] = 'false'

from pagecraft.core.config import GenerationConfig, WireProtocol
from pagecraft.main import app
from pagecraft.utils.llm_client import get_llm_client

from mocks.mock_llm import MockLLMClient
from mocks.scripts import (
    JSONL_DISPLAY,
    JSONL_KEYPAD,
    JSONL_PLAN,
    MARKER_DISPLAY,
    MARKER_KEYPAD,
    MARKER_PLAN,
)


def build_test_config(**overrides) -> GenerationConfig:
    """Generation config with test-friendly timeouts"""
    values = dict(
        protocol=WireProtocol.MARKER,
        module_timeout=5.0,
        chunk_timeout=5.0,
        trace_performance=False,
        save_output=False,
    )
    values.update(overrides)
    return GenerationConfig(**values)


@pytest.fixture
def make_config():
    """Factory for GenerationConfig with overrides"""
    return build_test_config


@pytest.fixture
def marker_llm() -> MockLLMClient:
    """Planner and workers speaking the marker framing"""
    return MockLLMClient(
        planner=MARKER_PLAN,
        modules={"Display": MARKER_DISPLAY, "Keypad": MARKER_KEYPAD},
        chunk_size=7,
    )


@pytest.fixture
def jsonl_llm() -> MockLLMClient:
    """Planner and workers speaking the line-delimited record framing"""
    return MockLLMClient(
        planner=JSONL_PLAN,
        modules={"Display": JSONL_DISPLAY, "Keypad": JSONL_KEYPAD},
        chunk_size=11,
    )


@pytest.fixture
async def client(jsonl_llm: MockLLMClient) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with the model client overridden"""
    app.dependency_overrides[get_llm_client] = lambda: jsonl_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()
