# spectra/nonfunctional_types.py
"""
Shared types, enums, and dataclasses for non-functional testing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

if TYPE_CHECKING:
    from spectra.models import TestResult


class NonFunctionalTestType(str, Enum):
    """Kind of non-functional test."""
    PERFORMANCE = "performance"
    SECURITY = "security"
    RELIABILITY = "reliability"
    LOAD = "load"


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins (accepts snake_case and camelCase inputs)."""
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


@dataclass(frozen=True)
class PerformanceTestConfig:
    """Repeat one case sequentially and check mean latency."""
    max_response_time: float = 2000.0
    repetitions: int = 5
    delay_ms: float = 0.0
    enabled: bool = True
    description: Optional[str] = None

    type = NonFunctionalTestType.PERFORMANCE


@dataclass(frozen=True)
class ReliabilityTestConfig:
    """Repeat one case and check the success rate."""
    executions: int = 10
    min_success_rate: float = 0.9
    enabled: bool = True
    description: Optional[str] = None

    type = NonFunctionalTestType.RELIABILITY


@dataclass(frozen=True)
class SecurityTestConfig:
    """Probe families to run against one case."""
    sql_injection: bool = True
    xss: bool = True
    headers: bool = True
    strict_security: bool = False
    custom_payloads: Dict[str, List[str]] = field(default_factory=dict)
    enabled: bool = True
    description: Optional[str] = None

    type = NonFunctionalTestType.SECURITY


@dataclass(frozen=True)
class LoadTestConfig:
    """Concurrent users hammering one case for a fixed window."""
    users: int = 5
    duration: float = 5.0  # seconds
    max_response_time: float = 2000.0
    min_rps: Optional[float] = None
    enabled: bool = True
    description: Optional[str] = None

    type = NonFunctionalTestType.LOAD


NonFunctionalConfig = Union[
    PerformanceTestConfig,
    ReliabilityTestConfig,
    SecurityTestConfig,
    LoadTestConfig,
]


def config_to_dict(config: NonFunctionalConfig) -> Dict[str, Any]:
    return {"type": config.type.value, **asdict(config)}


def config_from_dict(data: Dict[str, Any]) -> NonFunctionalConfig:
    """Build a typed config from a plain mapping (``type`` selects the kind)."""
    raw = dict(data.get("config") or {}, **{k: v for k, v in data.items() if k != "config"})
    kind = NonFunctionalTestType(str(raw.get("type", "")).lower())
    enabled = bool(raw.get("enabled", True))
    description = raw.get("description")

    if kind is NonFunctionalTestType.PERFORMANCE:
        return PerformanceTestConfig(
            max_response_time=float(_pick(raw, "max_response_time", "maxResponseTime", default=2000)),
            repetitions=int(_pick(raw, "repetitions", default=5)),
            delay_ms=float(_pick(raw, "delay_ms", "delay", default=0)),
            enabled=enabled,
            description=description,
        )
    if kind is NonFunctionalTestType.RELIABILITY:
        return ReliabilityTestConfig(
            executions=int(_pick(raw, "executions", default=10)),
            min_success_rate=float(_pick(raw, "min_success_rate", "minSuccessRate", default=0.9)),
            enabled=enabled,
            description=description,
        )
    if kind is NonFunctionalTestType.SECURITY:
        return SecurityTestConfig(
            sql_injection=bool(_pick(raw, "sql_injection", "sqlInjection", default=True)),
            xss=bool(_pick(raw, "xss", default=True)),
            headers=bool(_pick(raw, "headers", default=True)),
            strict_security=bool(_pick(raw, "strict_security", "strictSecurity", default=False)),
            custom_payloads={
                str(k): [str(v) for v in values]
                for k, values in (_pick(raw, "custom_payloads", "customPayloads", default={}) or {}).items()
            },
            enabled=enabled,
            description=description,
        )
    return LoadTestConfig(
        users=int(_pick(raw, "users", default=5)),
        duration=float(_pick(raw, "duration", default=5)),
        max_response_time=float(_pick(raw, "max_response_time", "maxResponseTime", default=2000)),
        min_rps=_pick(raw, "min_rps", "minRPS"),
        enabled=enabled,
        description=description,
    )


@dataclass
class NonFunctionalTestResult:
    """Outcome of one non-functional test; wraps the underlying runs."""
    type: NonFunctionalTestType
    success: bool
    metrics: Dict[str, float] = field(default_factory=dict)
    details: Optional[str] = None
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    findings: List[Dict[str, Any]] = field(default_factory=list)
    results: List["TestResult"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (underlying runs are summarized, not embedded)."""
        return {
            "type": self.type.value,
            "success": self.success,
            "metrics": dict(self.metrics),
            "details": self.details,
            "error": self.error,
            "errors": list(self.errors),
            "findings": list(self.findings),
            "executions": len(self.results),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NonFunctionalTestResult":
        return cls(
            type=NonFunctionalTestType(data["type"]),
            success=bool(data.get("success")),
            metrics=dict(data.get("metrics") or {}),
            details=data.get("details"),
            error=data.get("error"),
            errors=list(data.get("errors") or []),
            findings=list(data.get("findings") or []),
        )
