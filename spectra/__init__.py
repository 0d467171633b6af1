"""
Spectra: API test execution and regression orchestration engine.
"""

from spectra.config import OrchestratorConfig, Settings
from spectra.exceptions import (
    BaselineFormatError,
    OracleError,
    OracleResponseError,
    OrchestrationError,
    PersistenceError,
    SpectraError,
)
from spectra.http_runner import HTTPTestRunner
from spectra.models import (
    AssertionResult,
    ExpectedResponse,
    GherkinFeature,
    GherkinScenario,
    GherkinStep,
    ResponseSnapshot,
    TestCase,
    TestResult,
)
from spectra.nonfunctional_runner import NonFunctionalRunner
from spectra.orchestrator import AdaptiveOrchestrator, OrchestrationReport
from spectra.regression import RegressionComparator, RegressionSummary

__version__ = "0.1.0"

__all__ = [
    "AdaptiveOrchestrator",
    "AssertionResult",
    "BaselineFormatError",
    "ExpectedResponse",
    "GherkinFeature",
    "GherkinScenario",
    "GherkinStep",
    "HTTPTestRunner",
    "NonFunctionalRunner",
    "OracleError",
    "OracleResponseError",
    "OrchestrationError",
    "OrchestrationReport",
    "OrchestratorConfig",
    "PersistenceError",
    "RegressionComparator",
    "RegressionSummary",
    "ResponseSnapshot",
    "Settings",
    "SpectraError",
    "TestCase",
    "TestResult",
]
