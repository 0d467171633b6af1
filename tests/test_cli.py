"""Tests for the command line wrapper."""

import json

import httpx
import pytest

from spectra import cli
from spectra.http_runner import HTTPTestRunner

CASES = [
    {
        "id": "get-user",
        "feature": {"title": "Get user", "scenarios": [{"title": "ok", "tags": ["@functional"]}]},
        "endpoint": "/users/{id}",
        "method": "GET",
        "request": {"id": 1},
        "expected_response": {"status": 200, "schema": {"type": "object", "required": ["id"]}},
    },
    {
        "id": "list-users",
        "feature": {"title": "List users"},
        "endpoint": "/users",
        "tags": ["functional"],
    },
]


@pytest.fixture
def cases_file(tmp_path):
    path = tmp_path / "cases.json"
    path.write_text(json.dumps(CASES))
    return path


@pytest.fixture
def serve(monkeypatch):
    """Route every runner the CLI builds through a MockTransport handler."""
    state = {"handler": lambda request: httpx.Response(200, json={"id": 1})}

    class PatchedRunner:
        @staticmethod
        def from_settings(settings, **kwargs):
            transport = httpx.MockTransport(lambda request: state["handler"](request))
            return HTTPTestRunner.from_settings(settings, transport=transport, **kwargs)

    monkeypatch.setattr(cli, "HTTPTestRunner", PatchedRunner)
    return state


def _args(tmp_path, *extra):
    return [
        "--results", str(tmp_path / "test-results.json"),
        "--base-url", "http://api.test",
        *extra,
    ]


def test_run_writes_results(serve, cases_file, tmp_path, capsys):
    code = cli.main(["run", str(cases_file), *_args(tmp_path)])

    assert code == 0
    saved = json.loads((tmp_path / "test-results.json").read_text())
    assert [r["id"] for r in saved] == ["get-user", "list-users"]
    assert all(r["success"] for r in saved)
    assert "Passed: 2" in capsys.readouterr().out


def test_regression_cycle_exits_one_on_regression(serve, cases_file, tmp_path, capsys):
    baseline = tmp_path / "baseline.json"

    assert cli.main(["regression:baseline", str(cases_file), *_args(tmp_path, "--baseline", str(baseline))]) == 0
    assert baseline.exists()

    serve["handler"] = lambda request: httpx.Response(500, json={"error": "boom"})
    code = cli.main(["regression:run", str(cases_file), *_args(tmp_path, "--baseline", str(baseline))])

    assert code == 1
    report = json.loads((tmp_path / "regression-results.json").read_text())
    assert report["regressed_tests"] == 2
    assert "REGRESSION DETAILS" in capsys.readouterr().out


def test_regression_run_without_baseline_exits_zero(serve, cases_file, tmp_path):
    code = cli.main([
        "regression:run", str(cases_file), *_args(tmp_path, "--baseline", str(tmp_path / "missing.json"))
    ])

    assert code == 0
    assert not (tmp_path / "regression-results.json").exists()


def test_malformed_baseline_exits_two(serve, cases_file, tmp_path):
    baseline = tmp_path / "baseline.json"
    baseline.write_text("{broken")

    code = cli.main(["regression:run", str(cases_file), *_args(tmp_path, "--baseline", str(baseline))])

    assert code == 2


def test_missing_cases_file_exits_two(serve, tmp_path):
    assert cli.main(["run", str(tmp_path / "nope.json"), *_args(tmp_path)]) == 2


def test_orchestrate_writes_report(serve, cases_file, tmp_path, mock_env_vars):
    code = cli.main(["orchestrate", str(cases_file), *_args(tmp_path, "--phases", "functional")])

    assert code == 0
    report = json.loads((tmp_path / "orchestration-report.json").read_text())
    assert report["aborted"] is False
    assert report["execution_summary"]["phases_completed"] == ["functional"]
    assert len(report["results"]) == 2


def test_subcommand_required():
    with pytest.raises(SystemExit):
        cli.main([])
