# spectra/regression.py
"""
Regression Comparator

Diffs a baseline result set against the current one and classifies every
test:
  - new:        only in the current run
  - removed:    only in the baseline (never a regression)
  - regressed:  passed in baseline, fails now
  - improved:   failed in baseline, passes now
  - unchanged:  same outcome in both runs

Failing in both runs is "unchanged", not a regression: historical failures
that stay broken are not re-reported.

Response bodies are diffed structurally. Object key order is ignored, array
order is significant, and paths are RFC 6901 JSON pointers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from spectra.models import TestResult

logger = logging.getLogger(__name__)


class DiffKind(str, Enum):
    CHANGED = "changed"
    ADDED = "added"
    REMOVED = "removed"


class Classification(str, Enum):
    NEW = "new"
    REMOVED = "removed"
    REGRESSED = "regressed"
    IMPROVED = "improved"
    UNCHANGED = "unchanged"


# ==================== Diff Models ====================

@dataclass(frozen=True)
class ResponseDiff:
    path: str
    baseline_value: Any
    current_value: Any
    kind: DiffKind = DiffKind.CHANGED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "baseline_value": self.baseline_value,
            "current_value": self.current_value,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class AssertionDiff:
    name: str
    baseline_success: bool
    current_success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "baseline_success": self.baseline_success,
            "current_success": self.current_success,
        }


@dataclass
class RegressionResult:
    """Per-test comparison between baseline and current run."""
    test_id: str
    endpoint: str
    method: str
    classification: Classification
    baseline_success: Optional[bool] = None
    current_success: Optional[bool] = None
    baseline_status: Optional[int] = None
    current_status: Optional[int] = None
    status_code_changed: bool = False
    response_changed: bool = False
    response_changes: List[ResponseDiff] = field(default_factory=list)
    assertions_changed: bool = False
    assertion_changes: List[AssertionDiff] = field(default_factory=list)

    @property
    def is_regression(self) -> bool:
        return bool(self.baseline_success) and self.current_success is False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "endpoint": self.endpoint,
            "method": self.method,
            "classification": self.classification.value,
            "baseline_success": self.baseline_success,
            "current_success": self.current_success,
            "baseline_status": self.baseline_status,
            "current_status": self.current_status,
            "status_code_changed": self.status_code_changed,
            "response_changed": self.response_changed,
            "response_changes": [d.to_dict() for d in self.response_changes],
            "assertions_changed": self.assertions_changed,
            "assertion_changes": [d.to_dict() for d in self.assertion_changes],
            "is_regression": self.is_regression,
        }


@dataclass
class RegressionSummary:
    total_tests: int = 0
    new_tests: int = 0
    removed_tests: int = 0
    matching_tests: int = 0
    regressed_tests: int = 0
    improved_tests: int = 0
    unchanged_tests: int = 0
    details: List[RegressionResult] = field(default_factory=list)

    def by_classification(self, classification: Classification) -> List[RegressionResult]:
        return [d for d in self.details if d.classification is classification]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "new_tests": self.new_tests,
            "removed_tests": self.removed_tests,
            "matching_tests": self.matching_tests,
            "regressed_tests": self.regressed_tests,
            "improved_tests": self.improved_tests,
            "unchanged_tests": self.unchanged_tests,
            "details": [d.to_dict() for d in self.details],
        }


# ==================== Structural Diff ====================

def _escape(token: Any) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def _same_primitive(a: Any, b: Any) -> bool:
    """Type-aware equality: True != 1 != "1", but 1 == 1.0."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def diff_values(baseline: Any, current: Any, path: str = "") -> List[ResponseDiff]:
    """Walk both JSON trees in parallel; return every differing path."""
    if isinstance(baseline, dict) and isinstance(current, dict):
        diffs: List[ResponseDiff] = []
        for key in sorted(set(baseline) | set(current), key=str):
            child = f"{path}/{_escape(key)}"
            if key not in current:
                diffs.append(ResponseDiff(child, baseline[key], None, DiffKind.REMOVED))
            elif key not in baseline:
                diffs.append(ResponseDiff(child, None, current[key], DiffKind.ADDED))
            else:
                diffs.extend(diff_values(baseline[key], current[key], child))
        return diffs

    if isinstance(baseline, list) and isinstance(current, list):
        diffs = []
        for i in range(max(len(baseline), len(current))):
            child = f"{path}/{i}"
            if i >= len(current):
                diffs.append(ResponseDiff(child, baseline[i], None, DiffKind.REMOVED))
            elif i >= len(baseline):
                diffs.append(ResponseDiff(child, None, current[i], DiffKind.ADDED))
            else:
                diffs.extend(diff_values(baseline[i], current[i], child))
        return diffs

    if isinstance(baseline, (dict, list)) or isinstance(current, (dict, list)):
        return [ResponseDiff(path, baseline, current, DiffKind.CHANGED)]

    if _same_primitive(baseline, current):
        return []
    return [ResponseDiff(path, baseline, current, DiffKind.CHANGED)]


# ==================== Comparator ====================

ResultSet = Union[Mapping[str, TestResult], Iterable[TestResult]]


def index_results(results: ResultSet) -> Dict[str, TestResult]:
    """Results keyed by test-case id (accepts a mapping or an iterable)."""
    if isinstance(results, Mapping):
        return dict(results)
    return {r.test_case.id: r for r in results}


class RegressionComparator:
    """Classifies behavior changes between two completed result sets."""

    def compare(self, baseline: ResultSet, current: ResultSet) -> RegressionSummary:
        """Classify every test; total_tests counts the current run only, removed tests are in details."""
        base = index_results(baseline)
        curr = index_results(current)
        summary = RegressionSummary()

        for test_id, result in curr.items():
            if test_id in base:
                detail = self.compare_one(test_id, base[test_id], result)
            else:
                detail = RegressionResult(
                    test_id=test_id,
                    endpoint=result.test_case.endpoint,
                    method=result.test_case.method,
                    classification=Classification.NEW,
                    current_success=result.success,
                    current_status=result.status,
                )
            summary.details.append(detail)

        for test_id, result in base.items():
            if test_id in curr:
                continue
            summary.details.append(RegressionResult(
                test_id=test_id,
                endpoint=result.test_case.endpoint,
                method=result.test_case.method,
                classification=Classification.REMOVED,
                baseline_success=result.success,
                baseline_status=result.status,
            ))

        counts = {c: 0 for c in Classification}
        for detail in summary.details:
            counts[detail.classification] += 1

        summary.total_tests = len(curr)
        summary.new_tests = counts[Classification.NEW]
        summary.removed_tests = counts[Classification.REMOVED]
        summary.regressed_tests = counts[Classification.REGRESSED]
        summary.improved_tests = counts[Classification.IMPROVED]
        summary.unchanged_tests = counts[Classification.UNCHANGED]
        summary.matching_tests = summary.regressed_tests + summary.improved_tests + summary.unchanged_tests

        logger.info(
            f"📊 Regression: {summary.matching_tests} matching, {summary.regressed_tests} regressed, "
            f"{summary.improved_tests} improved, {summary.new_tests} new, {summary.removed_tests} removed"
        )
        return summary

    def compare_one(self, test_id: str, baseline: TestResult, current: TestResult) -> RegressionResult:
        """Diff one test present in both runs."""
        detail = RegressionResult(
            test_id=test_id,
            endpoint=current.test_case.endpoint,
            method=current.test_case.method,
            classification=Classification.UNCHANGED,
            baseline_success=baseline.success,
            current_success=current.success,
            baseline_status=baseline.status,
            current_status=current.status,
        )

        if baseline.response is not None and current.response is not None:
            detail.status_code_changed = baseline.response.status != current.response.status
            detail.response_changes = diff_values(baseline.response.body, current.response.body)
            detail.response_changed = bool(detail.response_changes)

        base_assertions = {a.name: a.success for a in baseline.assertions}
        for a in current.assertions:
            if a.name in base_assertions and base_assertions[a.name] != a.success:
                detail.assertion_changes.append(AssertionDiff(a.name, base_assertions[a.name], a.success))
        detail.assertions_changed = bool(detail.assertion_changes)

        if baseline.success and not current.success:
            detail.classification = Classification.REGRESSED
        elif not baseline.success and current.success:
            detail.classification = Classification.IMPROVED
        return detail


# ==================== Console Output ====================

def format_regression_results(summary: RegressionSummary) -> str:
    """Human-readable regression report for the console."""
    lines = [
        "",
        "== REGRESSION TEST RESULTS ==",
        "",
        f"Total tests: {summary.total_tests}",
        f"New tests: {summary.new_tests}",
        f"Removed tests: {summary.removed_tests}",
        f"Matching tests: {summary.matching_tests}",
        "",
        f"Regressions: {summary.regressed_tests} ❌",
        f"Improvements: {summary.improved_tests} ✅",
        f"Unchanged: {summary.unchanged_tests}",
        "",
    ]

    regressed = summary.by_classification(Classification.REGRESSED)
    if regressed:
        lines += ["=== REGRESSION DETAILS ===", ""]
        for d in regressed:
            lines.append(f"❌ {d.method.upper()} {d.endpoint} ({d.test_id})")
            if d.status_code_changed:
                lines.append(f"   Status code: {d.baseline_status} → {d.current_status}")
            broken = [a.name for a in d.assertion_changes if a.baseline_success and not a.current_success]
            if broken:
                lines.append("   Failed assertions:")
                lines += [f"     - {name}" for name in broken]
            if d.response_changes:
                lines.append("   Response changes:")
                lines += [
                    f"     - {c.path or '/'} ({c.kind.value}): {c.baseline_value!r} → {c.current_value!r}"
                    for c in d.response_changes
                ]
            lines.append("")

    improved = summary.by_classification(Classification.IMPROVED)
    if improved:
        lines += ["=== IMPROVEMENTS ===", ""]
        for d in improved:
            lines.append(f"✅ {d.method.upper()} {d.endpoint} ({d.test_id})")
            if d.status_code_changed:
                lines.append(f"   Status code: {d.baseline_status} → {d.current_status}")
            fixed = [a.name for a in d.assertion_changes if not a.baseline_success and a.current_success]
            if fixed:
                lines.append("   Fixed assertions:")
                lines += [f"     - {name}" for name in fixed]
            lines.append("")

    new = summary.by_classification(Classification.NEW)
    if new:
        lines += ["=== NEW TESTS ===", ""]
        lines += [f"{'✅' if d.current_success else '❌'} {d.method.upper()} {d.endpoint} ({d.test_id})" for d in new]
        lines.append("")

    removed = summary.by_classification(Classification.REMOVED)
    if removed:
        lines += ["=== REMOVED TESTS ===", ""]
        lines += [f"➖ {d.method.upper()} {d.endpoint} ({d.test_id})" for d in removed]
        lines.append("")

    return "\n".join(lines)
