# spectra/http_runner.py
"""
HTTP Test Runner

Turns one abstract TestCase into an HTTP exchange and a pass/fail verdict.

FEATURES:
✅ Async httpx client (shared when used as a context manager)
✅ Injectable path placeholder resolution with fallback flagging
✅ Query / JSON / multipart request building
✅ JSON-or-text body parsing
✅ Ordered assertions (status → schema → response time)
✅ Progress callbacks
✅ Optional structured per-case step logs (credentials redacted)

execute() never raises: every failure mode is captured in the TestResult.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from spectra.fixtures import FixtureResolver, ResolvedPath
from spectra.models import (
    DEFAULT_EXPECTED_STATUS,
    DEFAULT_MAX_RESPONSE_TIME_MS,
    AssertionResult,
    ResponseSnapshot,
    TestCase,
    TestResult,
    utc_now_iso,
)
from spectra.validators import (
    NO_SCHEMA_INFO,
    SCHEMA_ASSERTION,
    validate_against_schema,
    validate_response_time,
    validate_status_code,
)

logger = logging.getLogger(__name__)

FALLBACK_ASSERTION = "Path parameter fallback"

QUERY_METHODS = {"GET", "HEAD"}

_SENSITIVE_KEYS = {
    "authorization", "x-api-key", "api_key", "apikey", "token",
    "access_token", "cookie", "set-cookie", "x-auth-token", "x-access-token",
    "password", "secret", "session", "jwt",
}

ProgressCallback = Callable[[Dict[str, Any]], None]


# ==================== Utilities ====================

def _redact_sensitive(data: Any) -> Any:
    """Recursively redact sensitive information"""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in _SENSITIVE_KEYS else _redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [_redact_sensitive(item) for item in data]
    return data


def _query_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _form_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def parse_body(response: httpx.Response) -> Any:
    """JSON if parseable, raw text otherwise, None when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def snapshot_response(response: httpx.Response) -> ResponseSnapshot:
    return ResponseSnapshot(
        status=response.status_code,
        headers={k.lower(): v for k, v in response.headers.items()},
        body=parse_body(response),
    )


# ==================== Runner ====================

class HTTPTestRunner:
    """Executes test cases against a base URL."""

    def __init__(
        self,
        base_url: str = "",
        timeout_s: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        verify_ssl: bool = True,
        resolver: Optional[FixtureResolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        progress_cb: Optional[ProgressCallback] = None,
        step_log_dir: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.headers = dict(headers or {})
        self.verify_ssl = verify_ssl
        self.resolver = resolver or FixtureResolver()
        self._transport = transport
        self._progress_cb = progress_cb
        self.step_log_dir = Path(step_log_dir) if step_log_dir else None
        self._client: Optional[httpx.AsyncClient] = None
        self._stop = False

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "HTTPTestRunner":
        """Build a runner from a Settings instance."""
        return cls(
            base_url=settings.base_url,
            timeout_s=settings.timeout_s,
            headers=settings.default_headers,
            verify_ssl=settings.verify_ssl,
            resolver=FixtureResolver(
                fixtures=settings.fixtures,
                allow_defaults=settings.allow_default_fixtures,
            ),
            step_log_dir=settings.step_log_dir,
            **kwargs,
        )

    # ==================== Client lifecycle ====================

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json", **self.headers},
            timeout=httpx.Timeout(self.timeout_s),
            verify=self.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )

    async def __aenter__(self) -> "HTTPTestRunner":
        if self._client is None:
            self._client = self._make_client()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @asynccontextmanager
    async def client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a short-lived one when not entered."""
        if self._client is not None:
            yield self._client
            return
        async with self._make_client() as client:
            yield client

    def stop(self) -> None:
        """Request a graceful stop before the next case."""
        self._stop = True

    # ==================== Execution ====================

    async def execute(self, test_case: TestCase, client: Optional[httpx.AsyncClient] = None) -> TestResult:
        """Execute one test case end-to-end. Never raises."""
        if client is not None:
            return await self._execute(client, test_case)
        async with self.client_scope() as scoped:
            return await self._execute(scoped, test_case)

    async def run_all(self, test_cases: Iterable[TestCase]) -> Dict[str, TestResult]:
        """Execute cases sequentially; results keyed by test-case id."""
        cases = list(test_cases)
        results: Dict[str, TestResult] = {}
        self._stop = False
        start = time.perf_counter()
        self._emit("run.started", total=len(cases))

        async with self.client_scope() as client:
            for case in cases:
                if self._stop:
                    logger.info("🛑 Stop requested, skipping remaining cases")
                    break
                self._emit("case.started", id=case.id, method=case.method, endpoint=case.endpoint)
                result = await self._execute(client, case)
                results[case.id] = result
                self._emit("case.completed", id=case.id, success=result.success, duration_ms=result.duration_ms)

        passed = sum(1 for r in results.values() if r.success)
        self._emit(
            "run.completed",
            total=len(results),
            passed=passed,
            failed=len(results) - passed,
            duration_s=round(time.perf_counter() - start, 2),
        )
        return results

    async def _execute(self, client: httpx.AsyncClient, test_case: TestCase) -> TestResult:
        method = test_case.method.upper()
        expected = test_case.expected_response
        assertions: List[AssertionResult] = []
        fallbacks: List[str] = []
        duration_ms = 0.0
        t0: Optional[float] = None

        try:
            resolved = self.resolver.resolve(test_case)
            fallbacks = list(resolved.fallbacks)
            if resolved.fallbacks:
                assertions.append(AssertionResult(
                    name=FALLBACK_ASSERTION,
                    success=True,
                    info="Tested with default guesses: " + ", ".join(
                        self.resolver.describe_fallbacks(resolved.fallbacks)
                    ),
                ))

            request_kwargs = self._build_request(method, test_case, resolved)

            t0 = time.perf_counter()
            response = await client.request(method, resolved.path, **request_kwargs)
            duration_ms = (time.perf_counter() - t0) * 1000
            snapshot = snapshot_response(response)

            expected_status = expected.status if expected else DEFAULT_EXPECTED_STATUS
            max_ms = expected.max_response_time_ms if expected else DEFAULT_MAX_RESPONSE_TIME_MS
            schema = expected.schema if expected else None

            assertions.append(validate_status_code(snapshot.status, expected_status))
            if not schema:
                assertions.append(AssertionResult(name=SCHEMA_ASSERTION, success=True, info=NO_SCHEMA_INFO))
            elif snapshot.body is None:
                assertions.append(AssertionResult(
                    name=SCHEMA_ASSERTION,
                    success=True,
                    info="No schema validation performed (empty response body)",
                ))
            else:
                assertions.append(validate_against_schema(snapshot.body, schema))
            assertions.append(validate_response_time(duration_ms, max_ms))

        except Exception as e:
            if t0 is not None:
                duration_ms = (time.perf_counter() - t0) * 1000
            error = str(e) or type(e).__name__
            logger.error(f"❌ {test_case.id}: {method} {test_case.endpoint} failed - {error}")
            result = TestResult(
                test_case=test_case,
                success=False,
                duration_ms=duration_ms,
                response=None,
                assertions=assertions,
                error=error,
                fixture_fallbacks=fallbacks,
            )
            self._log_step(result, resolved_path=None)
            return result

        success = all(a.success for a in assertions)
        result = TestResult(
            test_case=test_case,
            success=success,
            duration_ms=duration_ms,
            response=snapshot,
            assertions=assertions,
            fixture_fallbacks=fallbacks,
        )

        if success:
            logger.info(f"✅ {test_case.id}: {method} {resolved.path} → {snapshot.status} ({duration_ms:.0f}ms)")
        else:
            failed = "; ".join(a.error or a.name for a in assertions if not a.success)
            logger.warning(f"❌ {test_case.id}: {method} {resolved.path} → {snapshot.status}: {failed}")

        self._log_step(result, resolved_path=resolved.path)
        return result

    def _build_request(self, method: str, test_case: TestCase, resolved: ResolvedPath) -> Dict[str, Any]:
        """httpx request kwargs for the remaining (non-path) payload."""
        payload = resolved.payload

        if test_case.files:
            files: List[Tuple[str, Tuple[Any, ...]]] = []
            for upload in test_case.files:
                path = Path(upload.file_path)
                if not path.is_file():
                    raise FileNotFoundError(f"File not found: {upload.file_path}")
                content = path.read_bytes()
                name = upload.file_name or path.name
                if upload.content_type:
                    files.append((upload.field_name, (name, content, upload.content_type)))
                else:
                    files.append((upload.field_name, (name, content)))

            file_fields = {u.field_name for u in test_case.files}
            data = {
                k: _form_value(v)
                for k, v in (payload or {}).items()
                if k not in file_fields
            } if isinstance(payload, dict) else {}
            return {"files": files, "data": data or None}

        if payload is None:
            return {}

        if method in QUERY_METHODS:
            if not isinstance(payload, dict):
                return {}
            return {"params": {k: _query_value(v) for k, v in payload.items()}} if payload else {}

        return {"json": payload}

    # ==================== Internals ====================

    def _emit(self, event: str, **data):
        """Emit progress event"""
        if self._progress_cb:
            try:
                self._progress_cb({"event": event, **data})
            except Exception:
                logger.debug("progress_cb failed", exc_info=True)

    def _log_step(self, result: TestResult, resolved_path: Optional[str]):
        """Structured per-case log with credentials redacted"""
        if self.step_log_dir is None:
            return

        case = result.test_case
        payload = {
            "test_id": case.id,
            "status": "PASS" if result.success else "FAIL",
            "method": case.method,
            "endpoint": case.endpoint,
            "path": resolved_path,
            "request": _redact_sensitive(case.request),
            "request_headers": _redact_sensitive(self.headers),
            "response": _redact_sensitive(result.response.to_dict()) if result.response else None,
            "assertions": [a.to_dict() for a in result.assertions],
            "error": result.error,
            "duration_ms": round(result.duration_ms, 2),
            "timestamp": utc_now_iso(),
        }

        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in case.id)
        out = self.step_log_dir / f"{safe_id}.json"
        try:
            self.step_log_dir.mkdir(parents=True, exist_ok=True)
            with out.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
        except OSError:
            logger.debug(f"Failed writing step log {out}")
