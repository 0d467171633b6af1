# spectra/security_probes/base.py
"""
Base class for security probes.
All probe families must inherit from AbstractSecurityProbe.

Probes never mutate the test case they are given: every trial is a derived
copy (dataclasses.replace), so no state leaks between trials.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

import httpx

from spectra.models import TestCase, TestResult

if TYPE_CHECKING:
    from spectra.http_runner import HTTPTestRunner

logger = logging.getLogger(__name__)

SYNTHETIC_FIELD = "param"


class Severity(str, Enum):
    """Severity of a security finding."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class SecurityFinding:
    """One vulnerability observed by a probe."""
    probe: str
    severity: Severity
    message: str
    parameter: Optional[str] = None
    payload: Optional[str] = None
    evidence: Optional[str] = None
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "severity": self.severity.value}


@dataclass
class ProbeOutcome:
    """Everything one probe family observed against one test case."""
    probe: str
    findings: List[SecurityFinding] = field(default_factory=list)
    probes_run: int = 0
    error: Optional[str] = None
    results: List[TestResult] = field(default_factory=list)

    @property
    def vulnerable(self) -> bool:
        return bool(self.findings)

    @property
    def passed(self) -> bool:
        return not self.findings and self.error is None


def body_text(result: TestResult) -> str:
    """Response body as searchable text."""
    if result.response is None or result.response.body is None:
        return ""
    body = result.response.body
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False)


def injectable_fields(test_case: TestCase) -> List[str]:
    """Payload fields a probe value can be written into (path placeholders excluded)."""
    placeholders = set(test_case.placeholders)
    request = test_case.request if isinstance(test_case.request, dict) else {}
    fields_ = [k for k in request if k not in placeholders]
    return fields_ or [SYNTHETIC_FIELD]


def with_field(test_case: TestCase, field_name: str, value: Any) -> TestCase:
    """Derived copy of the case with one payload field replaced."""
    request = dict(test_case.request) if isinstance(test_case.request, dict) else {}
    request[field_name] = value
    return replace(test_case, request=request)


class AbstractSecurityProbe(ABC):
    """
    Abstract base class for all security probes.
    Provides consistent interface and timeout handling.
    """

    def __init__(self, probe_timeout_s: float = 120.0):
        """
        Initialize security probe.

        Args:
            probe_timeout_s: Overall probe timeout (prevents hung probes)
        """
        self.probe_timeout_s = probe_timeout_s

    @property
    @abstractmethod
    def name(self) -> str:
        """Probe name (e.g., 'sql_injection')."""
        pass

    @abstractmethod
    async def run_async(
        self,
        runner: "HTTPTestRunner",
        test_case: TestCase,
        client: httpx.AsyncClient,
        outcome: ProbeOutcome,
    ) -> None:
        """
        Execute probe asynchronously.

        Args:
            runner: Runner used for every trial request
            test_case: Case to derive trials from (never mutated)
            client: Shared HTTP client
            outcome: Outcome object to add findings to
        """
        pass

    async def trial(
        self,
        runner: "HTTPTestRunner",
        client: httpx.AsyncClient,
        test_case: TestCase,
        outcome: ProbeOutcome,
    ) -> TestResult:
        """Run one derived case through the runner and record it."""
        result = await runner.execute(test_case, client=client)
        outcome.probes_run += 1
        outcome.results.append(result)
        return result

    def field_trials(self, test_case: TestCase, payloads: List[str]) -> Iterator[Tuple[str, List[Tuple[str, TestCase]]]]:
        """Per field: the derived trial cases, one per payload."""
        for field_name in injectable_fields(test_case):
            yield field_name, [(p, with_field(test_case, field_name, p)) for p in payloads]

    # ✨ Wrapper with timeout guard
    async def execute_async(
        self,
        runner: "HTTPTestRunner",
        test_case: TestCase,
        client: httpx.AsyncClient,
    ) -> ProbeOutcome:
        """
        Execute probe with timeout guard and error handling.

        An exception inside the probe becomes ``outcome.error``; it never
        propagates to the caller.
        """
        outcome = ProbeOutcome(probe=self.name)
        try:
            await asyncio.wait_for(
                self.run_async(runner, test_case, client, outcome),
                timeout=self.probe_timeout_s,
            )
            logger.debug("✅ Probe '%s' completed (%d trials)", self.name, outcome.probes_run)

        except asyncio.TimeoutError:
            logger.warning("⏱️ Probe '%s' timed out after %ss", self.name, self.probe_timeout_s)
            outcome.error = f"Probe timed out after {self.probe_timeout_s}s"

        except asyncio.CancelledError:
            logger.warning("❌ Probe '%s' was cancelled", self.name)
            raise

        except Exception as e:
            logger.error("❌ Probe '%s' failed: %s", self.name, e)
            outcome.error = f"Probe execution failed: {e}"

        return outcome
