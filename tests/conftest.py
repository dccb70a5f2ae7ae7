"""
pytest configuration for the aftersales test suite.

Sets PYTHONPATH so tests can import from the project root.
Prevents LangChain from making real LLM calls and the client from reaching the
real access-code API: every HTTP exchange goes through httpx.MockTransport.

asyncio_mode = "auto" (pyproject.toml) means all async test functions are
collected as asyncio tests - no @pytest.mark.asyncio needed.
"""
import os
import sys
from collections.abc import Callable

import httpx
import pytest

# Ensure the project root is on sys.path so `import aftersales` and `import mcp_server` work
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# Tests use mocked values and should not need real keys
os.environ.setdefault("GROQ_API_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "groq")

from aftersales.config import Settings  # noqa: E402

API_BASE = "https://api.test/api"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_base_url=API_BASE,
        api_token="test-token",
        request_timeout=2.0,
        allowed_file_root="/opt/support-bot/agent",
        session_store_path=str(tmp_path / "store" / "sessions.json"),
        checkpoint_db_path=":memory:",
    )


def access_code_record(code: str = "ABC12345", uses_remaining: int = 10, **extra) -> dict:
    record = {
        "code":           code,
        "usesRemaining":  uses_remaining,
        "isActive":       True,
        "processingMode": "standard",
    }
    record.update(extra)
    return record


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """
    Build an httpx.AsyncClient backed by a handler function.

    Usage:
        http = mock_http(lambda request: json_response({...}))
    """
    def factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
