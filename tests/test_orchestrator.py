"""Tests for the adaptive orchestrator."""

import asyncio
import time

import httpx
import pytest
from conftest import json_handler, make_case

from spectra.config import OrchestratorConfig
from spectra.exceptions import OrchestrationError
from spectra.nonfunctional_types import NonFunctionalTestType
from spectra.oracle import (
    Decision,
    FailureAnalysis,
    FinalAssessment,
    HeuristicOracle,
    OracleDecision,
    StrategyAdvice,
    Strategy,
)
from spectra.orchestrator import AdaptiveOrchestrator


class ScriptedOracle:
    """Returns queued decisions in order, then 'continue'."""

    def __init__(self, *decisions, on_decide=None):
        self.decisions = list(decisions)
        self.summaries = []
        self.on_decide = on_decide

    async def decide(self, summary):
        self.summaries.append(summary)
        if self.on_decide:
            self.on_decide()
        decision = self.decisions.pop(0) if self.decisions else Decision.CONTINUE
        return OracleDecision(decision=decision, rationale="scripted", confidence=0.9)

    async def analyze(self, summary):
        return FailureAnalysis()

    async def adapt_strategy(self, summary):
        return StrategyAdvice(new_strategy=Strategy.BALANCED)

    async def summarize(self, summary):
        return FinalAssessment(overall_assessment="done", key_insights=["final insight"])


class HangingOracle:
    async def decide(self, summary):
        await asyncio.sleep(3600)

    async def analyze(self, summary):
        await asyncio.sleep(3600)

    async def adapt_strategy(self, summary):
        await asyncio.sleep(3600)

    async def summarize(self, summary):
        await asyncio.sleep(3600)


def _config(**overrides) -> OrchestratorConfig:
    values = dict(
        phases=["functional", "error"],
        oracle_timeout_s=0.1,
        max_pause_s=0.05,
        final_grace_s=0.5,
    )
    values.update(overrides)
    return OrchestratorConfig(**values)


@pytest.mark.asyncio
async def test_phases_filter_by_tags(make_runner):
    cases = [
        make_case("f1", tags=["@functional"]),
        make_case("e1", status=404, scenario_tags=["@Error"]),
        make_case("untagged"),
    ]
    oracle = ScriptedOracle()
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), oracle, _config())

    report = await orchestrator.run(cases)

    assert list(report.results) == ["f1", "e1"]
    assert report.results["f1"].success is True
    assert report.results["e1"].success is False
    assert [d["phase"] for d in report.decisions] == ["functional", "error"]
    assert report.execution_summary["phases_completed"] == ["functional", "error"]
    assert report.aborted is False
    assert report.final_assessment.overall_assessment == "done"
    assert "final insight" in report.insights
    assert oracle.summaries[0]["executed_tests"] == 1


@pytest.mark.asyncio
async def test_hanging_oracle_does_not_block_twenty_cases(make_runner):
    cases = [make_case(f"c{i}", tags=["functional"]) for i in range(20)]
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({})),
        HangingOracle(),
        _config(phases=["functional"], analysis_cadence=5, final_grace_s=0.2),
    )

    start = time.perf_counter()
    report = await orchestrator.run(cases)
    elapsed = time.perf_counter() - start

    assert len(report.results) == 20
    assert all(r.success for r in report.results.values())
    assert report.decisions[0]["decision"] == "continue"
    assert elapsed < 5.0


@pytest.mark.asyncio
async def test_abort_stops_remaining_phases(make_runner):
    cases = [make_case("f1", tags=["functional"]), make_case("e1", tags=["error"])]
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({})), ScriptedOracle(Decision.ABORT), _config()
    )

    report = await orchestrator.run(cases)

    assert report.aborted is True
    assert list(report.results) == ["f1"]
    assert report.execution_summary["aborted"] is True


@pytest.mark.asyncio
async def test_pause_waits_then_continues(make_runner):
    cases = [make_case("f1", tags=["functional"]), make_case("e1", tags=["error"])]
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({})), ScriptedOracle(Decision.PAUSE), _config(max_pause_s=0.05)
    )

    report = await orchestrator.run(cases)

    assert list(report.results) == ["f1", "e1"]
    assert report.decisions[0]["decision"] == "pause"


@pytest.mark.asyncio
async def test_resume_releases_pause_early(make_runner):
    cases = [make_case("f1", tags=["functional"]), make_case("e1", tags=["error"])]
    holder = {}

    def schedule_resume():
        asyncio.get_running_loop().call_later(0.05, holder["orchestrator"].resume)

    oracle = ScriptedOracle(Decision.PAUSE, on_decide=schedule_resume)
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), oracle, _config(max_pause_s=30))
    holder["orchestrator"] = orchestrator

    start = time.perf_counter()
    report = await orchestrator.run(cases)

    assert len(report.results) == 2
    assert time.perf_counter() - start < 10


@pytest.mark.asyncio
async def test_retry_replaces_failed_results(make_runner):
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, json={"error": "warming up"})
        return httpx.Response(200, json={})

    orchestrator = AdaptiveOrchestrator(
        make_runner(handler), ScriptedOracle(Decision.RETRY), _config(phases=["functional"])
    )

    report = await orchestrator.run([make_case("f1", tags=["functional"])])

    assert calls["n"] == 2
    assert report.results["f1"].success is True
    assert report.execution_summary["failed_tests"] == 0
    assert report.execution_summary["passed_tests"] == 1


@pytest.mark.asyncio
async def test_state_is_discarded_after_run(make_runner):
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), ScriptedOracle(), _config())

    report = await orchestrator.run([make_case("f1", tags=["functional"])])

    assert orchestrator.state is None
    assert list(report.results) == ["f1"]


@pytest.mark.asyncio
async def test_analysis_cadence_counts_every_execution(make_runner):
    class CountingOracle(ScriptedOracle):
        analyses = 0

        async def analyze(self, summary):
            CountingOracle.analyses += 1
            return FailureAnalysis()

    cases = [make_case(f"c{i}", tags=["functional", "error"]) for i in range(5)]
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({})),
        CountingOracle(),
        _config(analysis_cadence=5, enable_adaptation=False),
    )

    report = await orchestrator.run(cases)

    assert len(report.results) == 5
    assert report.execution_summary["phases_completed"] == ["functional", "error"]
    # ten executions, so two analyses
    assert CountingOracle.analyses == 2


@pytest.mark.asyncio
async def test_unmet_dependency_skips_phase(make_runner):
    cases = [make_case("f1", tags=["functional"]), make_case("e1", tags=["error"])]
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), ScriptedOracle(), _config())

    report = await orchestrator.run(cases, dependencies={"error": ["security"]})

    assert list(report.results) == ["f1"]
    assert report.execution_summary["phases_skipped"] == ["error"]


@pytest.mark.asyncio
async def test_empty_phase_counts_as_completed(make_runner):
    cases = [make_case("e1", tags=["error"])]
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), ScriptedOracle(), _config())

    report = await orchestrator.run(cases, dependencies={"error": ["functional"]})

    assert report.execution_summary["phases_completed"] == ["functional", "error"]
    assert list(report.results) == ["e1"]
    # no decision is requested for a phase that ran nothing
    assert [d["phase"] for d in report.decisions] == ["error"]


@pytest.mark.asyncio
async def test_duplicate_ids_rejected(make_runner):
    orchestrator = AdaptiveOrchestrator(make_runner(json_handler({})), ScriptedOracle(), _config())

    with pytest.raises(OrchestrationError):
        await orchestrator.run([make_case("dup"), make_case("dup")])


def test_invalid_cadence_rejected(make_runner):
    with pytest.raises(OrchestrationError):
        AdaptiveOrchestrator(make_runner(json_handler({})), ScriptedOracle(), _config(analysis_cadence=0))


@pytest.mark.asyncio
async def test_performance_phase_uses_non_functional_runner(make_runner):
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({})), ScriptedOracle(), _config(phases=["performance"])
    )

    report = await orchestrator.run([make_case("p1", tags=["performance"])])

    nf = report.results["p1"].non_functional_results
    assert [r.type for r in nf] == [NonFunctionalTestType.PERFORMANCE]
    assert nf[0].metrics["samples"] == 5


@pytest.mark.asyncio
async def test_background_analysis_and_adaptation_are_merged(make_runner):
    cases = [make_case(f"c{i}", tags=["functional"]) for i in range(3)]
    orchestrator = AdaptiveOrchestrator(
        make_runner(json_handler({"error": "boom"}, status=500)),
        HeuristicOracle(),
        _config(phases=["functional"], analysis_cadence=1, oracle_timeout_s=1.0, final_grace_s=2.0),
    )

    report = await orchestrator.run(cases)

    assert report.execution_summary["success_rate"] == 0.0
    assert report.execution_summary["error_patterns"] == ["http_5xx"]
    assert any("http_5xx" in insight for insight in report.insights)
    assert "Server errors observed; check service logs" in report.recommendations
    assert report.execution_summary["strategy_used"] == "conservative"
    assert report.optimizations
    assert report.execution_summary["risk_assessment"] == "high"


@pytest.mark.asyncio
async def test_stop_skips_remaining_cases(make_runner):
    holder = {}

    def handler(request):
        holder["orchestrator"].stop()
        return httpx.Response(200, json={})

    orchestrator = AdaptiveOrchestrator(make_runner(handler), ScriptedOracle(), _config(phases=["functional"]))
    holder["orchestrator"] = orchestrator

    report = await orchestrator.run([make_case(f"c{i}", tags=["functional"]) for i in range(5)])

    # the in-flight case completes and is recorded
    assert list(report.results) == ["c0"]


def test_report_to_dict(make_runner):
    from spectra.orchestrator import OrchestrationReport

    report = OrchestrationReport(
        results={},
        insights=["i"],
        recommendations=[],
        optimizations=[],
        execution_summary={"total_tests": 0},
        decisions=[],
        final_assessment=FinalAssessment(overall_assessment="ok"),
    )

    data = report.to_dict()

    assert data["final_assessment"]["overall_assessment"] == "ok"
    assert data["aborted"] is False
