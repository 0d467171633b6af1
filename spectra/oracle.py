# spectra/oracle.py
"""
Decision Oracle

Advisory service consulted by the adaptive orchestrator:
  - decide():          continue | pause | abort | retry after a phase
  - analyze():         failure patterns / recommendations / risk level
  - adapt_strategy():  new execution strategy when the success rate drops
  - summarize():       final assessment of the run

Implementations:
  - OpenAIDecisionOracle: chat completion, strict pydantic parsing
  - HeuristicOracle: deterministic rules, used when no API key is configured
  - GuardedOracle: wraps either one with a timeout; any failure, malformed
    answer or timeout maps to a safe default and is never raised
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from spectra.exceptions import OracleError, OracleResponseError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

TRANSIENT_MARKERS = (
    "timeout", "timed out", "connection", "reset", "refused",
    "temporarily", "502", "503", "504", "429",
)


class _TokenEnum(str, Enum):
    """Case- and whitespace-insensitive lookup for model output tokens."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            token = value.strip().lower()
            for member in cls:
                if member.value == token:
                    return member
        return None


class Decision(_TokenEnum):
    CONTINUE = "continue"
    PAUSE = "pause"
    ABORT = "abort"
    RETRY = "retry"


class RiskLevel(_TokenEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Strategy(_TokenEnum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ==================== Response Models ====================

class _OracleModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OracleDecision(_OracleModel):
    decision: Decision
    rationale: str = Field(default="", validation_alias=_alias("rationale", "reason", "reasoning"))
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class FailureAnalysis(_OracleModel):
    patterns: List[str] = Field(default_factory=list)
    root_causes: List[str] = Field(default_factory=list, validation_alias=_alias("root_causes", "rootCauses"))
    recommendations: List[str] = Field(default_factory=list)
    risk_level: Optional[RiskLevel] = Field(default=None, validation_alias=_alias("risk_level", "riskLevel"))


class StrategyAdvice(_OracleModel):
    new_strategy: Strategy = Field(validation_alias=_alias("new_strategy", "newStrategy"))
    optimizations: List[str] = Field(default_factory=list)
    reasoning: str = ""


class FinalAssessment(_OracleModel):
    overall_assessment: str = Field(default="", validation_alias=_alias("overall_assessment", "overallAssessment"))
    key_insights: List[str] = Field(default_factory=list, validation_alias=_alias("key_insights", "keyInsights"))
    critical_issues: List[str] = Field(default_factory=list, validation_alias=_alias("critical_issues", "criticalIssues"))
    recommendations: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list, validation_alias=_alias("next_steps", "nextSteps"))


SAFE_DECISION = OracleDecision(
    decision=Decision.CONTINUE,
    rationale="Decision oracle unavailable; continuing by default",
    confidence=0.1,
)
EMPTY_ANALYSIS = FailureAnalysis()
EMPTY_ASSESSMENT = FinalAssessment(overall_assessment="No assessment available")

M = TypeVar("M", bound=BaseModel)


# ==================== Parsing ====================

def extract_json(raw: Optional[str]) -> Dict[str, Any]:
    """
    Pull one JSON object out of model output.

    Tries the whole text, then a fenced code block, then the outermost
    ``{...}`` span. Raises OracleResponseError when none parse to an object.
    """
    text = (raw or "").strip()
    candidates = [text]

    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.S)
    if fenced:
        candidates.append(fenced.group(1).strip())

    braces = re.search(r"\{.*\}", text, re.S)
    if braces:
        candidates.append(braces.group(0))
        # Remove trailing commas
        candidates.append(re.sub(r",(\s*[}\]])", r"\1", braces.group(0)))

    for candidate in candidates:
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise OracleResponseError(f"No JSON object in oracle response: {text[:200]!r}")


def parse_response(raw: Optional[str], model: Type[M]) -> M:
    """Strictly validate oracle output against a response model."""
    data = extract_json(raw)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise OracleResponseError(f"Oracle response does not match {model.__name__}: {e}") from e


# ==================== Interface ====================

class DecisionOracle(Protocol):
    async def decide(self, summary: Dict[str, Any]) -> OracleDecision: ...

    async def analyze(self, summary: Dict[str, Any]) -> FailureAnalysis: ...

    async def adapt_strategy(self, summary: Dict[str, Any]) -> StrategyAdvice: ...

    async def summarize(self, summary: Dict[str, Any]) -> FinalAssessment: ...


def _fmt_list(items: Optional[List[Any]]) -> str:
    return ", ".join(str(i) for i in items) if items else "none"


# ==================== OpenAI ====================

class OpenAIDecisionOracle:
    """Chat-completion backed oracle. Raises on failure; wrap in GuardedOracle."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout_s: float = 10.0,
        max_tokens: int = 800,
        client=None,
    ):
        if client is None:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=0)
        self._client = client
        self.model = model
        self.max_tokens = max_tokens

    async def _complete(self, prompt: str) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.0,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise OracleError(f"Oracle request failed: {e}") from e

        if not resp.choices:
            raise OracleResponseError("Oracle returned no choices")
        raw = resp.choices[0].message.content or ""
        tokens_used = resp.usage.total_tokens if getattr(resp, "usage", None) else 0
        logger.debug(f"Oracle call ok: tokens={tokens_used}")
        return raw

    async def decide(self, summary: Dict[str, Any]) -> OracleDecision:
        prompt = (
            "You are a test execution advisor. Given the current execution state, "
            "recommend the next action.\n\n"
            "CURRENT EXECUTION STATE:\n"
            f"- Phase: {summary.get('phase')}\n"
            f"- Total tests executed: {summary.get('executed_tests')}\n"
            f"- Failed tests: {summary.get('failed_tests')}\n"
            f"- Success rate: {float(summary.get('success_rate') or 0) * 100:.2f}%\n"
            f"- Average response time: {float(summary.get('average_response_time') or 0):.0f}ms\n"
            f"- Error patterns: {_fmt_list(summary.get('error_patterns'))}\n"
            f"- Recent errors: {_fmt_list(summary.get('recent_errors'))}\n"
            f"- Risk assessment: {summary.get('risk_assessment')}\n\n"
            "DECISION CRITERIA:\n"
            "- success rate < 50% with high-risk errors: \"abort\"\n"
            "- success rate 50-70% with concerning patterns: \"pause\"\n"
            "- success rate > 70% with minor issues: \"continue\"\n"
            "- transient failures (timeouts, 5xx, connection resets): \"retry\"\n\n"
            "Return ONLY a JSON object:\n"
            '{"decision": "continue|pause|abort|retry", "rationale": string, "confidence": number 0-1}'
        )
        return parse_response(await self._complete(prompt), OracleDecision)

    async def analyze(self, summary: Dict[str, Any]) -> FailureAnalysis:
        prompt = (
            "Analyze these API test failures and identify patterns.\n\n"
            f"Phase: {summary.get('phase')}\n"
            f"Success rate: {float(summary.get('success_rate') or 0) * 100:.2f}%\n"
            f"Recent failures: {json.dumps(summary.get('recent_failures') or [], default=str)}\n\n"
            "Return ONLY a JSON object:\n"
            '{"patterns": string[], "root_causes": string[], "recommendations": string[], '
            '"risk_level": "low|medium|high"}'
        )
        return parse_response(await self._complete(prompt), FailureAnalysis)

    async def adapt_strategy(self, summary: Dict[str, Any]) -> StrategyAdvice:
        prompt = (
            "The test run success rate dropped below the acceptable threshold. "
            "Recommend an execution strategy.\n\n"
            f"Current strategy: {summary.get('strategy')}\n"
            f"Success rate: {float(summary.get('success_rate') or 0) * 100:.2f}%\n"
            f"Error patterns: {_fmt_list(summary.get('error_patterns'))}\n\n"
            "Return ONLY a JSON object:\n"
            '{"new_strategy": "conservative|balanced|aggressive", "optimizations": string[], "reasoning": string}'
        )
        return parse_response(await self._complete(prompt), StrategyAdvice)

    async def summarize(self, summary: Dict[str, Any]) -> FinalAssessment:
        prompt = (
            "Summarize this API test run for an engineering audience.\n\n"
            f"{json.dumps(summary, indent=2, default=str)}\n\n"
            "Return ONLY a JSON object:\n"
            '{"overall_assessment": string, "key_insights": string[], "critical_issues": string[], '
            '"recommendations": string[], "next_steps": string[]}'
        )
        return parse_response(await self._complete(prompt), FinalAssessment)


# ==================== Heuristic Fallback ====================

def _is_transient(error: str) -> bool:
    e = error.lower()
    return any(marker in e for marker in TRANSIENT_MARKERS)


def classify_error(error: str) -> str:
    """Coarse error pattern label for one error message."""
    e = (error or "").lower()
    if "timeout" in e or "timed out" in e:
        return "timeout"
    if "connect" in e or "refused" in e or "reset" in e:
        return "connection_error"
    if "schema" in e:
        return "schema_mismatch"
    m = re.search(r"got (\d{3})", e)
    if m:
        return f"http_{m.group(1)[0]}xx"
    if "response time" in e:
        return "slow_response"
    return "other"


class HeuristicOracle:
    """Deterministic rules mirroring the documented decision criteria."""

    async def decide(self, summary: Dict[str, Any]) -> OracleDecision:
        executed = int(summary.get("executed_tests") or 0)
        rate = float(summary.get("success_rate") or 0.0)
        risk = str(summary.get("risk_assessment") or "low")
        phase_errors = [str(e) for e in summary.get("recent_errors") or []]

        if executed == 0:
            return OracleDecision(decision=Decision.CONTINUE, rationale="Nothing executed yet", confidence=0.5)
        if phase_errors and all(_is_transient(e) for e in phase_errors):
            return OracleDecision(
                decision=Decision.RETRY,
                rationale="Recent failures look transient",
                confidence=0.6,
            )
        if rate < 0.5 and risk == RiskLevel.HIGH.value:
            return OracleDecision(
                decision=Decision.ABORT,
                rationale=f"Success rate {rate:.0%} with high risk",
                confidence=0.7,
            )
        if rate < 0.7:
            return OracleDecision(
                decision=Decision.PAUSE,
                rationale=f"Success rate {rate:.0%} needs review",
                confidence=0.6,
            )
        return OracleDecision(decision=Decision.CONTINUE, rationale=f"Success rate {rate:.0%}", confidence=0.7)

    async def analyze(self, summary: Dict[str, Any]) -> FailureAnalysis:
        errors = [str(f.get("error") or "") for f in summary.get("recent_failures") or []]
        counts: Dict[str, int] = {}
        for error in errors:
            label = classify_error(error)
            counts[label] = counts.get(label, 0) + 1

        rate = float(summary.get("success_rate") or 0.0)
        if rate < 0.5:
            risk = RiskLevel.HIGH
        elif rate < 0.8:
            risk = RiskLevel.MEDIUM
        else:
            risk = RiskLevel.LOW

        recommendations = []
        if counts.get("timeout") or counts.get("slow_response"):
            recommendations.append("Investigate latency; consider raising timeouts for slow endpoints")
        if counts.get("connection_error"):
            recommendations.append("Check that the target service is reachable")
        if counts.get("schema_mismatch"):
            recommendations.append("Response shapes drifted from the documented schema")
        if counts.get("http_5xx"):
            recommendations.append("Server errors observed; check service logs")

        return FailureAnalysis(
            patterns=[f"{label} x{n}" for label, n in sorted(counts.items(), key=lambda kv: -kv[1])],
            recommendations=recommendations,
            risk_level=risk,
        )

    async def adapt_strategy(self, summary: Dict[str, Any]) -> StrategyAdvice:
        rate = float(summary.get("success_rate") or 0.0)
        if rate < 0.3:
            return StrategyAdvice(
                new_strategy=Strategy.CONSERVATIVE,
                optimizations=["Run remaining phases with minimal parallelism", "Prioritize smoke coverage"],
                reasoning=f"Success rate {rate:.0%} is very low",
            )
        return StrategyAdvice(
            new_strategy=Strategy.BALANCED,
            optimizations=["Keep current coverage"],
            reasoning=f"Success rate {rate:.0%}",
        )

    async def summarize(self, summary: Dict[str, Any]) -> FinalAssessment:
        total = int(summary.get("total_tests") or 0)
        failed = int(summary.get("failed_tests") or 0)
        rate = float(summary.get("success_rate") or 0.0)
        critical = [f"{failed} of {total} tests failed"] if failed else []
        return FinalAssessment(
            overall_assessment=f"{total - failed}/{total} tests passed ({rate:.0%})",
            key_insights=list(summary.get("error_patterns") or []),
            critical_issues=critical,
            recommendations=list(summary.get("recommendations") or []),
            next_steps=["Fix failing endpoints and re-run"] if failed else ["Promote this run as the new baseline"],
        )


# ==================== Guard ====================

class GuardedOracle:
    """
    Bounded, never-raising wrapper around any DecisionOracle.

    Exceptions, timeouts and malformed answers map to SAFE_DECISION (or an
    empty analysis) and are logged as warnings.
    """

    def __init__(self, oracle: DecisionOracle, timeout_s: float = 10.0):
        self.oracle = oracle
        self.timeout_s = timeout_s

    async def _guard(self, op: str, coro, fallback):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_s)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Oracle {op} timed out after {self.timeout_s}s; using default")
        except (OracleError, ValidationError) as e:
            logger.warning(f"⚠️ Oracle {op} failed: {e}; using default")
        except Exception as e:
            logger.warning(f"⚠️ Oracle {op} raised {type(e).__name__}: {e}; using default")
        return fallback

    async def decide(self, summary: Dict[str, Any]) -> OracleDecision:
        result = await self._guard("decide", self.oracle.decide(summary), SAFE_DECISION)
        if not isinstance(result, OracleDecision):
            logger.warning("⚠️ Oracle decide returned unexpected type; using default")
            return SAFE_DECISION
        return result

    async def analyze(self, summary: Dict[str, Any]) -> FailureAnalysis:
        result = await self._guard("analyze", self.oracle.analyze(summary), EMPTY_ANALYSIS)
        return result if isinstance(result, FailureAnalysis) else EMPTY_ANALYSIS

    async def adapt_strategy(self, summary: Dict[str, Any]) -> Optional[StrategyAdvice]:
        result = await self._guard("adapt_strategy", self.oracle.adapt_strategy(summary), None)
        return result if isinstance(result, StrategyAdvice) else None

    async def summarize(self, summary: Dict[str, Any]) -> FinalAssessment:
        result = await self._guard("summarize", self.oracle.summarize(summary), EMPTY_ASSESSMENT)
        return result if isinstance(result, FinalAssessment) else EMPTY_ASSESSMENT


def build_oracle(settings) -> GuardedOracle:
    """OpenAI-backed oracle when an API key is configured, heuristics otherwise."""
    if settings.openai_api_key:
        logger.info(f"🤖 Decision oracle: OpenAI ({settings.oracle_model})")
        inner: DecisionOracle = OpenAIDecisionOracle(
            api_key=settings.openai_api_key,
            model=settings.oracle_model,
            timeout_s=settings.oracle_timeout_s,
        )
    else:
        logger.info("🤖 Decision oracle: heuristic (no OPENAI_API_KEY)")
        inner = HeuristicOracle()
    return GuardedOracle(inner, timeout_s=settings.oracle_timeout_s)
