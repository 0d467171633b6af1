# spectra/nonfunctional_runner.py
"""
Non-Functional Test Runner

Performance, reliability, security and load tests layered on the HTTP test
runner. Every request goes through HTTPTestRunner.execute(), so assertion
logic is never bypassed.

An exception inside one test becomes a failing NonFunctionalTestResult; it
never aborts the remaining tests for the case.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from spectra.http_runner import HTTPTestRunner
from spectra.models import TestCase, TestResult
from spectra.nonfunctional_types import (
    LoadTestConfig,
    NonFunctionalConfig,
    NonFunctionalTestResult,
    NonFunctionalTestType,
    PerformanceTestConfig,
    ReliabilityTestConfig,
    SecurityTestConfig,
)
from spectra.security_probes import build_probes

logger = logging.getLogger(__name__)


def _result_errors(result: TestResult) -> List[str]:
    """Every error message carried by one failed run."""
    if result.error:
        return [result.error]
    return [a.error for a in result.assertions if not a.success and a.error] or ["Test failed"]


class NonFunctionalRunner:
    """Runs non-functional tests for a test case."""

    def __init__(self, runner: HTTPTestRunner, probe_timeout_s: float = 120.0):
        self.runner = runner
        self.probe_timeout_s = probe_timeout_s

    # ==================== Entry points ====================

    async def execute_non_functional_tests(
        self,
        test_case: TestCase,
        configs: Optional[Iterable[NonFunctionalConfig]] = None,
    ) -> TestResult:
        """
        Run the functional test, then every enabled non-functional config.

        ``configs`` overrides the case's own ``non_functional_tests``. A
        failing non-functional result marks the whole result failed.
        """
        base = await self.runner.execute(test_case)
        selected = [c for c in (configs if configs is not None else test_case.non_functional_tests) if c.enabled]

        nf_results: List[NonFunctionalTestResult] = []
        for config in selected:
            logger.info(f"🔬 {test_case.id}: running {config.type.value} test")
            nf_results.append(await self.run_test(test_case, config))

        success = base.success
        error = base.error
        for nf in nf_results:
            if not nf.success:
                success = False
                if error is None:
                    error = f"Non-functional test failed: {nf.type.value}"

        return replace(base, success=success, error=error, non_functional_results=nf_results)

    async def run_test(self, test_case: TestCase, config: NonFunctionalConfig) -> NonFunctionalTestResult:
        """Dispatch one config; any exception becomes a failing result."""
        handlers = {
            NonFunctionalTestType.PERFORMANCE: self.run_performance_test,
            NonFunctionalTestType.RELIABILITY: self.run_reliability_test,
            NonFunctionalTestType.SECURITY: self.run_security_test,
            NonFunctionalTestType.LOAD: self.run_load_test,
        }
        kind = getattr(config, "type", None)
        handler = handlers.get(kind)
        if handler is None:
            return NonFunctionalTestResult(
                type=kind if isinstance(kind, NonFunctionalTestType) else NonFunctionalTestType.PERFORMANCE,
                success=False,
                error=f"Unknown test type: {kind}",
                details=f"Unknown test type: {kind}",
            )

        try:
            return await handler(test_case, config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ {test_case.id}: {kind.value} test failed - {e}")
            return NonFunctionalTestResult(
                type=kind,
                success=False,
                error=str(e) or type(e).__name__,
                details=f"Error running {kind.value} test: {e}",
            )

    # ==================== Performance ====================

    @staticmethod
    def _percentiles(values: List[float], ps: List[int]) -> Dict[str, float]:
        """Calculate percentiles"""
        if not values:
            return {f"p{p}": 0.0 for p in ps}

        sorted_v = sorted(values)
        out: Dict[str, float] = {}
        n = len(sorted_v)

        for p in ps:
            k = max(1, int(round(p / 100.0 * n)))
            out[f"p{p}"] = float(sorted_v[k - 1])

        return out

    async def run_performance_test(self, test_case: TestCase, config: PerformanceTestConfig) -> NonFunctionalTestResult:
        """Sequential repetitions; success iff mean latency <= max."""
        if config.repetitions < 1:
            raise ValueError("repetitions must be at least 1")

        results: List[TestResult] = []
        start = time.perf_counter()

        async with self.runner.client_scope() as client:
            for i in range(config.repetitions):
                results.append(await self.runner.execute(test_case, client=client))
                if config.delay_ms and i < config.repetitions - 1:
                    await asyncio.sleep(config.delay_ms / 1000.0)

        total_ms = (time.perf_counter() - start) * 1000
        durations = [r.duration_ms for r in results]
        mean = statistics.fmean(durations)

        metrics = {
            "avg_response_time": mean,
            "min_response_time": min(durations),
            "max_response_time": max(durations),
            "std_deviation": statistics.pstdev(durations),
            "total_duration": total_ms,
            "samples": float(len(durations)),
            **self._percentiles(durations, [50, 90, 95, 99]),
        }
        success = mean <= config.max_response_time
        errors = [e for r in results if not r.success for e in _result_errors(r)]

        logger.info(
            f"⏱️ {test_case.id}: avg {mean:.0f}ms over {len(durations)} runs "
            f"(max allowed {config.max_response_time:.0f}ms)"
        )
        return NonFunctionalTestResult(
            type=NonFunctionalTestType.PERFORMANCE,
            success=success,
            metrics=metrics,
            details=(
                f"Average response time: {mean:.2f}ms "
                f"({'within' if success else 'exceeds'} {config.max_response_time:.0f}ms limit)"
            ),
            errors=errors,
            results=results,
        )

    # ==================== Reliability ====================

    async def run_reliability_test(self, test_case: TestCase, config: ReliabilityTestConfig) -> NonFunctionalTestResult:
        """Repeated executions; success iff success rate >= minimum."""
        if config.executions < 1:
            raise ValueError("executions must be at least 1")

        results: List[TestResult] = []
        start = time.perf_counter()
        async with self.runner.client_scope() as client:
            for _ in range(config.executions):
                results.append(await self.runner.execute(test_case, client=client))

        successes = sum(1 for r in results if r.success)
        rate = successes / config.executions
        errors = [e for r in results if not r.success for e in _result_errors(r)]
        success = rate >= config.min_success_rate

        logger.info(f"🔁 {test_case.id}: {successes}/{config.executions} succeeded ({rate:.0%})")
        return NonFunctionalTestResult(
            type=NonFunctionalTestType.RELIABILITY,
            success=success,
            metrics={
                "success_rate": rate,
                "success_count": float(successes),
                "total_executions": float(config.executions),
                "total_duration": (time.perf_counter() - start) * 1000,
            },
            details=f"Success rate: {rate:.2%} (minimum {config.min_success_rate:.2%})",
            errors=errors,
            results=results,
        )

    # ==================== Security ====================

    async def run_security_test(self, test_case: TestCase, config: SecurityTestConfig) -> NonFunctionalTestResult:
        """Run each enabled probe family; each is guarded independently."""
        probes = build_probes(config, probe_timeout_s=self.probe_timeout_s)
        if not probes:
            return NonFunctionalTestResult(
                type=NonFunctionalTestType.SECURITY,
                success=True,
                details="No security probes enabled",
            )

        metrics: Dict[str, float] = {}
        findings = []
        errors: List[str] = []
        results: List[TestResult] = []
        probes_run = 0

        async with self.runner.client_scope() as client:
            for probe in probes:
                outcome = await probe.execute_async(self.runner, test_case, client)
                probes_run += outcome.probes_run
                results.extend(outcome.results)
                findings.extend(f.to_dict() for f in outcome.findings)
                if outcome.error:
                    errors.append(f"{probe.name}: {outcome.error}")
                metrics[f"{probe.name}_passed"] = 1.0 if outcome.passed else 0.0

        metrics["probes_run"] = float(probes_run)
        metrics["vulnerabilities"] = float(len(findings))
        success = not findings and not errors

        if findings:
            details = f"{len(findings)} potential vulnerabilities: " + "; ".join(f["message"] for f in findings)
        elif errors:
            details = "Security probes failed: " + "; ".join(errors)
        else:
            details = f"No vulnerabilities found in {probes_run} probes"

        return NonFunctionalTestResult(
            type=NonFunctionalTestType.SECURITY,
            success=success,
            metrics=metrics,
            details=details,
            error=errors[0] if errors else None,
            errors=errors,
            findings=findings,
            results=results,
        )

    # ==================== Load ====================

    async def run_load_test(self, test_case: TestCase, config: LoadTestConfig) -> NonFunctionalTestResult:
        """
        ``users`` concurrent workers repeat the request until the window
        closes. Workers share one client and append to shared collectors.
        """
        if config.users < 1:
            raise ValueError("users must be at least 1")
        if config.duration <= 0:
            raise ValueError("duration must be positive")

        loop = asyncio.get_running_loop()
        latencies: List[float] = []
        outcomes: List[bool] = []
        errors: List[str] = []

        async with self.runner.client_scope() as client:
            deadline = loop.time() + config.duration

            async def worker():
                while loop.time() < deadline:
                    result = await self.runner.execute(test_case, client=client)
                    latencies.append(result.duration_ms)
                    outcomes.append(result.success)
                    if not result.success:
                        errors.extend(_result_errors(result))

            start = time.perf_counter()
            logger.info(f"📈 {test_case.id}: {config.users} users for {config.duration}s")
            await asyncio.gather(*(worker() for _ in range(config.users)))
            elapsed = time.perf_counter() - start

        total = len(latencies)
        mean = statistics.fmean(latencies) if latencies else 0.0
        rps = total / elapsed if elapsed > 0 else 0.0

        success = total > 0 and mean <= config.max_response_time
        if config.min_rps is not None:
            success = success and rps >= config.min_rps

        successful = sum(1 for ok in outcomes if ok)
        return NonFunctionalTestResult(
            type=NonFunctionalTestType.LOAD,
            success=success,
            metrics={
                "total_requests": float(total),
                "successful_requests": float(successful),
                "failed_requests": float(total - successful),
                "duration": elapsed,
                "requests_per_second": rps,
                "avg_response_time": mean,
                "p95_response_time": self._percentiles(latencies, [95])["p95"],
                "users": float(config.users),
            },
            details=f"{total} requests at {rps:.2f} req/s, average {mean:.2f}ms",
            errors=errors,
        )
