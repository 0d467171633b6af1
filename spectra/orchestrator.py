# spectra/orchestrator.py
"""
Adaptive Orchestrator

Runs test cases phase by phase (functional → boundary → error → security →
performance by default) and consults a decision oracle between phases.

Execution model:
  - Cases inside a phase run sequentially; each one is awaited.
  - Every N-th case a background analysis task is fired; when the success
    rate drops below the threshold a strategy adaptation task is fired too.
    Neither is ever awaited by the phase loop. Their results land in
    append-only insight / recommendation / optimization lists.
  - After each phase the oracle is asked (bounded) for continue / pause /
    abort / retry. Anything that goes wrong maps to "continue".
  - At the end a final summary task is started and all pending background
    tasks get a bounded grace period before being cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from spectra.config import OrchestratorConfig
from spectra.exceptions import OrchestrationError
from spectra.http_runner import HTTPTestRunner
from spectra.models import TestCase, TestResult, utc_now_iso
from spectra.nonfunctional_runner import NonFunctionalRunner
from spectra.nonfunctional_types import (
    NonFunctionalConfig,
    NonFunctionalTestType,
    PerformanceTestConfig,
    SecurityTestConfig,
)
from spectra.oracle import (
    Decision,
    DecisionOracle,
    FinalAssessment,
    GuardedOracle,
    RiskLevel,
    Strategy,
    classify_error,
)

logger = logging.getLogger(__name__)

# Phase → (non-functional kinds taken from the case, default config when it has none)
PHASE_NONFUNCTIONAL: Dict[str, Tuple[Set[NonFunctionalTestType], NonFunctionalConfig]] = {
    "performance": (
        {NonFunctionalTestType.PERFORMANCE, NonFunctionalTestType.LOAD, NonFunctionalTestType.RELIABILITY},
        PerformanceTestConfig(),
    ),
    "security": ({NonFunctionalTestType.SECURITY}, SecurityTestConfig()),
}


# ==================== State ====================

@dataclass
class PerformanceMetrics:
    average_response_time: float = 0.0
    success_rate: float = 0.0
    error_patterns: List[str] = field(default_factory=list)


@dataclass
class OrchestratorState:
    """Mutable session for one orchestrated run. Built fresh by every run()."""
    test_cases: List[TestCase]
    phases: List[str]
    dependencies: Dict[str, List[str]]
    current_phase: Optional[str] = None
    completed_phases: List[str] = field(default_factory=list)
    skipped_phases: List[str] = field(default_factory=list)
    executed_tests: List[str] = field(default_factory=list)
    executions: int = 0
    failed_tests: List[str] = field(default_factory=list)
    test_results: Dict[str, TestResult] = field(default_factory=dict)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    adaptive_strategy: str = Strategy.BALANCED.value
    continuation_decision: Optional[str] = None
    decisions: List[Dict[str, Any]] = field(default_factory=list)
    optimizations: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    risk_assessment: str = RiskLevel.LOW.value
    started_at: str = field(default_factory=utc_now_iso)


@dataclass
class OrchestrationReport:
    """What an orchestrated run returns to the report sink."""
    results: Dict[str, TestResult]
    insights: List[str]
    recommendations: List[str]
    optimizations: List[str]
    execution_summary: Dict[str, Any]
    decisions: List[Dict[str, Any]]
    final_assessment: Optional[FinalAssessment] = None
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results.values()],
            "insights": list(self.insights),
            "recommendations": list(self.recommendations),
            "optimizations": list(self.optimizations),
            "execution_summary": dict(self.execution_summary),
            "decisions": list(self.decisions),
            "final_assessment": self.final_assessment.model_dump() if self.final_assessment else None,
            "aborted": self.aborted,
        }


# ==================== Orchestrator ====================

class AdaptiveOrchestrator:
    """Phase sequencing with oracle-driven continuation decisions."""

    def __init__(
        self,
        runner: HTTPTestRunner,
        oracle: DecisionOracle,
        config: Optional[OrchestratorConfig] = None,
        nf_runner: Optional[NonFunctionalRunner] = None,
    ):
        self.config = config or OrchestratorConfig()
        if self.config.analysis_cadence < 1:
            raise OrchestrationError("analysis_cadence must be at least 1")

        self.runner = runner
        self.nf_runner = nf_runner or NonFunctionalRunner(runner)
        self.oracle = oracle if isinstance(oracle, GuardedOracle) else GuardedOracle(
            oracle, timeout_s=self.config.oracle_timeout_s
        )

        self.state: Optional[OrchestratorState] = None
        self._pending: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._resume_event: Optional[asyncio.Event] = None
        self._recent_errors: Deque[Dict[str, Any]] = deque(maxlen=self.config.recent_error_window)
        self._phase_errors: List[str] = []
        self._adapting = False
        self._final_assessment: Optional[FinalAssessment] = None
        self._stop = False

    # ==================== Control ====================

    def stop(self) -> None:
        """Stop starting new cases; an in-flight case still completes and is recorded."""
        self._stop = True

    def resume(self) -> None:
        """Release a pause early."""
        if self._resume_event is not None:
            self._resume_event.set()

    # ==================== Run ====================

    async def run(
        self,
        test_cases: Iterable[TestCase],
        phases: Optional[Sequence[str]] = None,
        dependencies: Optional[Dict[str, List[str]]] = None,
    ) -> OrchestrationReport:
        cases = list(test_cases)
        ids = [c.id for c in cases]
        if len(ids) != len(set(ids)):
            raise OrchestrationError("test case ids must be unique")

        state = OrchestratorState(
            test_cases=cases,
            phases=list(phases or self.config.phases),
            dependencies=dict(dependencies if dependencies is not None else self.config.phase_dependencies),
        )
        self.state = state
        self._pending = set()
        self._lock = asyncio.Lock()
        self._resume_event = asyncio.Event()
        self._recent_errors.clear()
        self._adapting = False
        self._final_assessment = None
        self._stop = False
        aborted = False
        start = time.perf_counter()

        logger.info(f"🧠 Orchestrated run: {len(cases)} cases across phases {state.phases}")

        for phase in state.phases:
            if self._stop:
                logger.info("🛑 Stop requested, skipping remaining phases")
                break

            missing = [d for d in state.dependencies.get(phase, []) if d not in state.completed_phases]
            if missing:
                logger.warning(f"⏭️ Skipping phase '{phase}': dependencies not completed {missing}")
                state.skipped_phases.append(phase)
                continue

            phase_cases = [c for c in cases if phase.lower() in c.phase_tags]
            state.current_phase = phase
            if not phase_cases:
                logger.info(f"⏭️ Phase '{phase}' has no test cases")
                state.completed_phases.append(phase)
                continue

            logger.info(f"▶️ Phase '{phase}': {len(phase_cases)} cases")
            self._phase_errors = []
            await self._run_phase(phase, phase_cases)
            state.completed_phases.append(phase)

            decision = await self.oracle.decide(self._summary(phase))
            state.continuation_decision = decision.decision.value
            state.decisions.append({
                "phase": phase,
                "decision": decision.decision.value,
                "rationale": decision.rationale,
                "confidence": decision.confidence,
            })
            logger.info(f"🤖 Decision after '{phase}': {decision.decision.value} ({decision.rationale})")

            if decision.decision is Decision.ABORT:
                logger.warning(f"🛑 Aborting run after phase '{phase}'")
                aborted = True
                break
            if decision.decision is Decision.PAUSE:
                await self._pause()
            elif decision.decision is Decision.RETRY:
                await self._retry_failed(phase, phase_cases)

        execution_summary = self._execution_summary(aborted, time.perf_counter() - start)
        self._spawn(self._final_summary(execution_summary), "final_summary")
        await self._drain(self.config.final_grace_s)

        async with self._lock:
            report = OrchestrationReport(
                results=dict(state.test_results),
                insights=list(state.insights),
                recommendations=list(state.recommendations),
                optimizations=list(state.optimizations),
                execution_summary={
                    **execution_summary,
                    "strategy_used": state.adaptive_strategy,
                    "risk_assessment": state.risk_assessment,
                    "optimizations_applied": len(state.optimizations),
                },
                decisions=list(state.decisions),
                final_assessment=self._final_assessment,
                aborted=aborted,
            )
        # the report owns the results from here on
        self.state = None

        logger.info(
            f"🏁 Run finished: {execution_summary['passed_tests']}/{execution_summary['total_tests']} passed"
            f"{' (aborted)' if aborted else ''}"
        )
        return report

    async def _run_phase(self, phase: str, cases: List[TestCase]) -> None:
        state = self.state
        cadence = self.config.analysis_cadence

        for case in cases:
            if self._stop:
                break

            result = await self._execute_case(phase, case)
            self._record(result)

            if state.executions % cadence == 0:
                self._spawn(self._analyze(self._summary(phase)), f"analysis:{phase}")

                if (
                    self.config.enable_adaptation
                    and not self._adapting
                    and state.performance_metrics.success_rate < self.config.max_failure_threshold
                ):
                    self._adapting = True
                    self._spawn(self._adapt(self._summary(phase)), f"adapt:{phase}")

    async def _execute_case(self, phase: str, case: TestCase) -> TestResult:
        if phase in self.config.nonfunctional_phases and phase in PHASE_NONFUNCTIONAL:
            kinds, default = PHASE_NONFUNCTIONAL[phase]
            configs = [c for c in case.non_functional_tests if c.type in kinds] or [default]
            return await self.nf_runner.execute_non_functional_tests(case, configs)
        return await self.runner.execute(case)

    async def _retry_failed(self, phase: str, cases: List[TestCase]) -> None:
        """Re-run the phase's failed cases once; new results replace the old ones."""
        results = self.state.test_results
        failed = [c for c in cases if c.id in results and not results[c.id].success]
        if not failed:
            return
        logger.info(f"🔁 Retrying {len(failed)} failed cases from phase '{phase}'")
        for case in failed:
            if self._stop:
                break
            self._record(await self._execute_case(phase, case))

    async def _pause(self) -> None:
        logger.info(f"⏸️ Paused; waiting up to {self.config.max_pause_s}s for resume()")
        self._resume_event.clear()
        try:
            await asyncio.wait_for(self._resume_event.wait(), timeout=self.config.max_pause_s)
            logger.info("▶️ Resumed")
        except asyncio.TimeoutError:
            logger.info("▶️ Pause window elapsed, resuming automatically")

    # ==================== Metrics ====================

    def _record(self, result: TestResult) -> None:
        state = self.state
        test_id = result.test_case.id
        state.test_results[test_id] = result
        state.executions += 1

        if test_id not in state.executed_tests:
            state.executed_tests.append(test_id)
        if result.success:
            if test_id in state.failed_tests:
                state.failed_tests.remove(test_id)
        else:
            if test_id not in state.failed_tests:
                state.failed_tests.append(test_id)
            error = result.error or "; ".join(a.error for a in result.assertions if not a.success and a.error)
            self._recent_errors.append({"id": test_id, "endpoint": result.test_case.endpoint, "error": error})
            self._phase_errors.append(error)
            label = classify_error(error)
            if label not in state.performance_metrics.error_patterns:
                state.performance_metrics.error_patterns.append(label)

        results = list(state.test_results.values())
        metrics = state.performance_metrics
        metrics.average_response_time = sum(r.duration_ms for r in results) / len(results)
        metrics.success_rate = sum(1 for r in results if r.success) / len(results)

    def _summary(self, phase: Optional[str]) -> Dict[str, Any]:
        """Plain-data snapshot handed to the oracle."""
        state = self.state
        return {
            "phase": phase,
            "executed_tests": len(state.executed_tests),
            "failed_tests": len(state.failed_tests),
            "success_rate": state.performance_metrics.success_rate,
            "average_response_time": state.performance_metrics.average_response_time,
            "error_patterns": list(state.performance_metrics.error_patterns),
            "recent_errors": list(self._phase_errors[-self.config.recent_error_window:]),
            "recent_failures": list(self._recent_errors),
            "risk_assessment": state.risk_assessment,
            "strategy": state.adaptive_strategy,
        }

    def _execution_summary(self, aborted: bool, elapsed_s: float) -> Dict[str, Any]:
        state = self.state
        results = list(state.test_results.values())
        passed = sum(1 for r in results if r.success)
        return {
            "total_tests": len(results),
            "passed_tests": passed,
            "failed_tests": len(results) - passed,
            "success_rate": state.performance_metrics.success_rate,
            "average_response_time": state.performance_metrics.average_response_time,
            "phases_completed": list(state.completed_phases),
            "phases_skipped": list(state.skipped_phases),
            "fixture_fallbacks": sum(1 for r in results if r.fixture_fallbacks),
            "error_patterns": list(state.performance_metrics.error_patterns),
            "recommendations": list(state.recommendations),
            "aborted": aborted,
            "duration_s": round(elapsed_s, 2),
        }

    # ==================== Background Tasks ====================

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"⚠️ Background task {task.get_name()} failed: {exc}")

    async def _analyze(self, summary: Dict[str, Any]) -> None:
        analysis = await self.oracle.analyze(summary)
        async with self._lock:
            self.state.insights.extend(analysis.patterns)
            self.state.insights.extend(analysis.root_causes)
            self.state.recommendations.extend(analysis.recommendations)
            if analysis.risk_level is not None:
                self.state.risk_assessment = analysis.risk_level.value
        logger.debug(f"Analysis merged: {len(analysis.patterns)} patterns")

    async def _adapt(self, summary: Dict[str, Any]) -> None:
        try:
            advice = await self.oracle.adapt_strategy(summary)
            if advice is None:
                return
            async with self._lock:
                previous = self.state.adaptive_strategy
                self.state.adaptive_strategy = advice.new_strategy.value
                self.state.optimizations.extend(advice.optimizations)
                if advice.reasoning:
                    self.state.insights.append(f"Strategy {previous} → {advice.new_strategy.value}: {advice.reasoning}")
            logger.info(f"🔧 Strategy adapted: {previous} → {advice.new_strategy.value}")
        finally:
            self._adapting = False

    async def _final_summary(self, execution_summary: Dict[str, Any]) -> None:
        async with self._lock:
            payload = {
                **execution_summary,
                "insights": list(self.state.insights),
                "recommendations": list(self.state.recommendations),
            }
        assessment = await self.oracle.summarize(payload)
        async with self._lock:
            self._final_assessment = assessment
            self.state.insights.extend(assessment.key_insights)
            self.state.recommendations.extend(assessment.recommendations)

    async def _drain(self, grace_s: float) -> None:
        """Join pending background tasks for at most grace_s, then cancel the rest."""
        if not self._pending:
            return
        pending = set(self._pending)
        done, still_pending = await asyncio.wait(pending, timeout=grace_s)
        if still_pending:
            logger.warning(f"⏱️ Cancelling {len(still_pending)} background tasks after {grace_s}s grace period")
            for task in still_pending:
                task.cancel()
            await asyncio.gather(*still_pending, return_exceptions=True)
