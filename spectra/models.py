# spectra/models.py
"""
Core data model: test cases, assertions, results.

Test cases are immutable once built; probes derive variants with
dataclasses.replace. Results are created once per execution attempt and
replaced (never edited) when a case is retried.

Every persisted type round-trips through to_dict()/from_dict(). from_dict()
accepts both snake_case keys and the camelCase keys used by upstream
generators.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from spectra.nonfunctional_types import (
    NonFunctionalConfig,
    NonFunctionalTestResult,
    _pick,
    config_from_dict,
    config_to_dict,
)

DEFAULT_EXPECTED_STATUS = 200
DEFAULT_MAX_RESPONSE_TIME_MS = 2000.0

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ==================== Gherkin Description ====================

@dataclass(frozen=True)
class GherkinStep:
    keyword: str  # Given | When | Then | And | But
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"keyword": self.keyword, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GherkinStep":
        return cls(keyword=str(data.get("keyword", "Given")), text=str(data.get("text", "")))


@dataclass(frozen=True)
class GherkinScenario:
    title: str
    steps: Tuple[GherkinStep, ...] = ()
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "steps": [s.to_dict() for s in self.steps],
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GherkinScenario":
        return cls(
            title=str(data.get("title", "")),
            steps=tuple(GherkinStep.from_dict(s) for s in data.get("steps") or []),
            tags=tuple(str(t) for t in data.get("tags") or []),
        )


@dataclass(frozen=True)
class GherkinFeature:
    """Behavioral description of a test case: a title plus ordered scenarios."""
    title: str
    description: Optional[str] = None
    scenarios: Tuple[GherkinScenario, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "scenarios": [s.to_dict() for s in self.scenarios],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GherkinFeature":
        return cls(
            title=str(data.get("title", "")),
            description=data.get("description"),
            scenarios=tuple(GherkinScenario.from_dict(s) for s in data.get("scenarios") or []),
        )


# ==================== Test Case ====================

@dataclass(frozen=True)
class FileUpload:
    """A multipart file attachment."""
    field_name: str
    file_path: str
    file_name: Optional[str] = None
    content_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_name": self.field_name,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "content_type": self.content_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileUpload":
        return cls(
            field_name=str(_pick(data, "field_name", "fieldName")),
            file_path=str(_pick(data, "file_path", "filePath")),
            file_name=_pick(data, "file_name", "fileName"),
            content_type=_pick(data, "content_type", "contentType"),
        )


@dataclass(frozen=True)
class ExpectedResponse:
    status: int = DEFAULT_EXPECTED_STATUS
    schema: Optional[Dict[str, Any]] = None
    max_response_time_ms: float = DEFAULT_MAX_RESPONSE_TIME_MS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "schema": self.schema,
            "max_response_time_ms": self.max_response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpectedResponse":
        return cls(
            status=int(_pick(data, "status", default=DEFAULT_EXPECTED_STATUS)),
            schema=data.get("schema"),
            max_response_time_ms=float(_pick(
                data, "max_response_time_ms", "maxResponseTime", default=DEFAULT_MAX_RESPONSE_TIME_MS
            )),
        )


@dataclass(frozen=True)
class TestCase:
    """
    One behavioral scenario to execute against the target API.

    ``request`` values may be referenced by ``{placeholder}`` segments in
    ``endpoint``. ``tags`` and scenario tags decide phase membership.
    ``fixtures`` supplies placeholder values when the payload does not.
    """
    __test__ = False  # not a pytest class

    id: str
    feature: GherkinFeature
    endpoint: str
    method: str = "GET"
    request: Optional[Dict[str, Any]] = None
    files: Tuple[FileUpload, ...] = ()
    expected_response: Optional[ExpectedResponse] = None
    tags: Tuple[str, ...] = ()
    fixtures: Optional[Dict[str, str]] = None
    non_functional_tests: Tuple[NonFunctionalConfig, ...] = ()

    @property
    def title(self) -> str:
        return self.feature.title

    @property
    def phase_tags(self) -> frozenset:
        tags = {t.lstrip("@").lower() for t in self.tags}
        for scenario in self.feature.scenarios:
            tags.update(t.lstrip("@").lower() for t in scenario.tags)
        return frozenset(tags)

    @property
    def placeholders(self) -> List[str]:
        return PLACEHOLDER_RE.findall(self.endpoint)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "feature": self.feature.to_dict(),
            "endpoint": self.endpoint,
            "method": self.method,
            "request": self.request,
            "files": [f.to_dict() for f in self.files],
            "expected_response": self.expected_response.to_dict() if self.expected_response else None,
            "tags": list(self.tags),
            "fixtures": self.fixtures,
            "non_functional_tests": [config_to_dict(c) for c in self.non_functional_tests],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestCase":
        expected = _pick(data, "expected_response", "expectedResponse")
        feature = data.get("feature") or {"title": str(data.get("id", ""))}
        return cls(
            id=str(data["id"]),
            feature=GherkinFeature.from_dict(feature),
            endpoint=str(data.get("endpoint", "/")),
            method=str(data.get("method", "GET")).upper(),
            request=data.get("request"),
            files=tuple(FileUpload.from_dict(f) for f in data.get("files") or []),
            expected_response=ExpectedResponse.from_dict(expected) if expected is not None else None,
            tags=tuple(str(t) for t in data.get("tags") or []),
            fixtures=data.get("fixtures"),
            non_functional_tests=tuple(
                config_from_dict(c)
                for c in _pick(data, "non_functional_tests", "nonFunctionalTests", default=[])
            ),
        )


# ==================== Results ====================

@dataclass(frozen=True)
class AssertionResult:
    """One pass/fail check on an observed response property."""
    name: str
    success: bool
    error: Optional[str] = None
    info: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "success": self.success}
        if self.error is not None:
            out["error"] = self.error
        if self.info is not None:
            out["info"] = self.info
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssertionResult":
        return cls(
            name=str(data.get("name", "")),
            success=bool(data.get("success")),
            error=data.get("error"),
            info=data.get("info"),
        )


@dataclass
class ResponseSnapshot:
    """Captured response: status, header map, parsed body (JSON, text, or None)."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "headers": dict(self.headers), "body": self.body}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResponseSnapshot":
        return cls(
            status=int(data.get("status", 0)),
            headers=dict(data.get("headers") or {}),
            body=_pick(data, "body", "data"),
        )


@dataclass
class TestResult:
    """
    Outcome of one execution attempt of a test case.

    ``success`` is true iff every assertion succeeded and no transport error
    occurred. ``non_functional_results`` is filled only for cases executed
    through the non-functional extensions.
    """
    __test__ = False  # not a pytest class

    test_case: TestCase
    success: bool
    duration_ms: float = 0.0
    response: Optional[ResponseSnapshot] = None
    assertions: List[AssertionResult] = field(default_factory=list)
    error: Optional[str] = None
    fixture_fallbacks: List[str] = field(default_factory=list)
    non_functional_results: List[NonFunctionalTestResult] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def id(self) -> str:
        return self.test_case.id

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.test_case.id,
            "test_case": self.test_case.to_dict(),
            "success": self.success,
            "duration_ms": round(self.duration_ms, 2),
            "response": self.response.to_dict() if self.response else None,
            "assertions": [a.to_dict() for a in self.assertions],
            "error": self.error,
            "fixture_fallbacks": list(self.fixture_fallbacks),
            "non_functional_results": [r.to_dict() for r in self.non_functional_results],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestResult":
        case_data = _pick(data, "test_case", "testCase")
        if case_data is None:
            raise ValueError(f"result {data.get('id')!r} has no test case")
        if "id" not in case_data and "id" in data:
            case_data = {**case_data, "id": data["id"]}
        response = data.get("response")
        return cls(
            test_case=TestCase.from_dict(case_data),
            success=bool(data.get("success")),
            duration_ms=float(_pick(data, "duration_ms", "duration", default=0.0)),
            response=ResponseSnapshot.from_dict(response) if isinstance(response, dict) else None,
            assertions=[AssertionResult.from_dict(a) for a in data.get("assertions") or []],
            error=data.get("error"),
            fixture_fallbacks=list(_pick(data, "fixture_fallbacks", "fixtureFallbacks", default=[])),
            non_functional_results=[
                NonFunctionalTestResult.from_dict(r)
                for r in _pick(data, "non_functional_results", "nonFunctionalResults", default=[])
            ],
            timestamp=str(data.get("timestamp") or utc_now_iso()),
        )
