"""Pytest configuration and fixtures."""

from typing import Any, Callable, Dict, Optional

import httpx
import pytest

from spectra.fixtures import FixtureResolver
from spectra.http_runner import HTTPTestRunner
from spectra.models import (
    AssertionResult,
    ExpectedResponse,
    GherkinFeature,
    GherkinScenario,
    ResponseSnapshot,
    TestCase,
    TestResult,
)

BASE_URL = "http://api.test"


def make_case(
    case_id: str = "t1",
    endpoint: str = "/users",
    method: str = "GET",
    request: Optional[Dict[str, Any]] = None,
    status: int = 200,
    schema: Optional[Dict[str, Any]] = None,
    max_ms: float = 2000.0,
    tags=(),
    scenario_tags=(),
    **kwargs,
) -> TestCase:
    """Small builder so tests only spell out what they care about."""
    return TestCase(
        id=case_id,
        feature=GherkinFeature(
            title=f"{method} {endpoint}",
            scenarios=(GherkinScenario(title="scenario", tags=tuple(scenario_tags)),),
        ),
        endpoint=endpoint,
        method=method,
        request=request,
        expected_response=ExpectedResponse(status=status, schema=schema, max_response_time_ms=max_ms),
        tags=tuple(tags),
        **kwargs,
    )


def make_result(
    case_id: str = "t1",
    success: bool = True,
    status: int = 200,
    body: Any = None,
    assertions=None,
    endpoint: str = "/users",
) -> TestResult:
    """A completed result without going through HTTP."""
    if assertions is None:
        assertions = [AssertionResult(name="Status code validation", success=success)]
    return TestResult(
        test_case=make_case(case_id, endpoint=endpoint),
        success=success,
        duration_ms=12.0,
        response=ResponseSnapshot(status=status, headers={}, body=body),
        assertions=list(assertions),
    )


def json_handler(body: Any = None, status: int = 200, headers: Optional[Dict[str, str]] = None) -> Callable:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body, headers=headers)
    return handler


@pytest.fixture
def make_runner():
    """Factory: runner bound to a MockTransport handler."""
    def factory(handler: Callable, **kwargs) -> HTTPTestRunner:
        kwargs.setdefault("resolver", FixtureResolver())
        return HTTPTestRunner(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)
    return factory


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    monkeypatch.setenv("SPECTRA_BASE_URL", "http://env.test")
    monkeypatch.setenv("SPECTRA_TIMEOUT_S", "5")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("SPECTRA_OPENAI_API_KEY", raising=False)
