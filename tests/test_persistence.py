"""Tests for results, baseline and test-case file I/O."""

import json

import pytest
from conftest import make_case, make_result

from spectra.exceptions import BaselineFormatError, PersistenceError
from spectra.nonfunctional_types import NonFunctionalTestResult, NonFunctionalTestType
from spectra.persistence import (
    load_baseline,
    load_results,
    load_test_cases,
    save_baseline,
    save_regression_report,
    save_results,
)
from spectra.regression import RegressionComparator


def test_results_round_trip(tmp_path):
    result = make_result("t1", body={"id": 1})
    result.non_functional_results.append(NonFunctionalTestResult(
        type=NonFunctionalTestType.RELIABILITY,
        success=True,
        metrics={"success_rate": 1.0},
    ))
    path = tmp_path / "out" / "test-results.json"

    save_results({"t1": result}, path)
    loaded = load_results(path)

    assert list(loaded) == ["t1"]
    restored = loaded["t1"]
    assert restored.success is True
    assert restored.response.body == {"id": 1}
    assert restored.test_case.endpoint == "/users"
    assert restored.non_functional_results[0].metrics == {"success_rate": 1.0}

    raw = json.loads(path.read_text())
    assert raw[0]["id"] == "t1"


def test_missing_baseline_returns_none(tmp_path):
    assert load_baseline(tmp_path / "missing.json") is None


def test_malformed_baseline_raises(tmp_path):
    path = tmp_path / "baseline.json"
    path.write_text("{not json")

    with pytest.raises(BaselineFormatError):
        load_baseline(path)


def test_wrong_shape_baseline_raises(tmp_path):
    path = tmp_path / "baseline.json"
    path.write_text(json.dumps({"t1": {"success": True}}))

    with pytest.raises(BaselineFormatError):
        load_baseline(path)


def test_baseline_entry_without_test_case_raises(tmp_path):
    path = tmp_path / "baseline.json"
    path.write_text(json.dumps([{"id": "t1", "success": True}]))

    with pytest.raises(BaselineFormatError):
        load_baseline(path)


def test_baseline_round_trip_compares_unchanged(tmp_path):
    results = {"t1": make_result("t1", body={"a": 1})}
    path = save_baseline(results, tmp_path / "regression-baseline.json")

    summary = RegressionComparator().compare(load_baseline(path), results)

    assert summary.unchanged_tests == 1
    assert summary.details[0].response_changed is False


def test_write_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")

    with pytest.raises(PersistenceError):
        save_results({}, blocker / "results.json")


def test_regression_report_written_next_to_results(tmp_path):
    summary = RegressionComparator().compare({}, {"t1": make_result()})

    out = save_regression_report(summary, tmp_path / "test-results.json")

    assert out == tmp_path / "regression-results.json"
    assert json.loads(out.read_text())["new_tests"] == 1


def test_load_test_cases_accepts_camel_case(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text(json.dumps({"testCases": [{
        "id": "c1",
        "feature": {"title": "Get user", "scenarios": [{"title": "ok", "tags": ["@functional"]}]},
        "endpoint": "/users/{id}",
        "method": "get",
        "expectedResponse": {"status": 200, "maxResponseTime": 500},
        "nonFunctionalTests": [{"type": "reliability", "config": {"executions": 3, "minSuccessRate": 1}}],
    }]}))

    cases = load_test_cases(path)

    case = cases[0]
    assert case.method == "GET"
    assert case.expected_response.max_response_time_ms == 500
    assert case.phase_tags == frozenset({"functional"})
    assert case.non_functional_tests[0].executions == 3
    assert case.non_functional_tests[0].min_success_rate == 1.0


def test_load_test_cases_errors(tmp_path):
    with pytest.raises(PersistenceError):
        load_test_cases(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"nothing": []}))
    with pytest.raises(PersistenceError):
        load_test_cases(bad)

    no_id = tmp_path / "no_id.json"
    no_id.write_text(json.dumps([{"endpoint": "/x"}]))
    with pytest.raises(PersistenceError):
        load_test_cases(no_id)


def test_round_trip_keeps_case_shape():
    case = make_case("c9", endpoint="/orders/{id}", method="DELETE", request={"id": 4}, tags=("@error",))

    restored = type(case).from_dict(case.to_dict())

    assert restored == case
