# spectra/persistence.py
"""
Result, baseline and test-case file I/O.

Files hold a JSON array of ``{id, ...TestResult}`` objects. A missing
baseline is not an error (comparison is skipped); a malformed one is.
Write failures raise PersistenceError: losing test evidence silently is
never acceptable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from spectra.exceptions import BaselineFormatError, PersistenceError
from spectra.models import TestCase, TestResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _write_json(path: PathLike, data: Any) -> Path:
    out = Path(path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        tmp = out.with_name(out.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        tmp.replace(out)
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed writing {out}: {e}") from e
    return out


def _serialize(results: Union[Mapping[str, TestResult], Iterable[TestResult]]) -> List[Dict[str, Any]]:
    values = results.values() if isinstance(results, Mapping) else results
    return [r.to_dict() for r in values]


def _parse_results(data: Any, source: Path) -> Dict[str, TestResult]:
    if not isinstance(data, list):
        raise BaselineFormatError(f"{source}: expected a JSON array of results, got {type(data).__name__}")
    out: Dict[str, TestResult] = {}
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise BaselineFormatError(f"{source}: entry {i} is not an object")
        try:
            result = TestResult.from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise BaselineFormatError(f"{source}: entry {i} is malformed: {e}") from e
        out[result.test_case.id] = result
    return out


# ==================== Results ====================

def save_results(results, path: PathLike) -> Path:
    """Serialize a run's results (mapping or iterable of TestResult)."""
    out = _write_json(path, _serialize(results))
    logger.info(f"💾 Results saved to {out}")
    return out


def load_results(path: PathLike) -> Dict[str, TestResult]:
    """Load a results file; missing or malformed files are errors."""
    src = Path(path)
    try:
        with src.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise PersistenceError(f"Results file not found: {src}") from e
    except json.JSONDecodeError as e:
        raise BaselineFormatError(f"{src}: invalid JSON ({e})") from e
    except OSError as e:
        raise PersistenceError(f"Failed reading {src}: {e}") from e
    return _parse_results(data, src)


# ==================== Baseline ====================

def save_baseline(results, path: PathLike) -> Path:
    out = _write_json(path, _serialize(results))
    logger.info(f"📌 Baseline saved to {out}")
    return out


def load_baseline(path: PathLike) -> Optional[Dict[str, TestResult]]:
    """
    Load the baseline result set.

    Returns None (with a warning) when the file does not exist. Raises
    BaselineFormatError when it exists but cannot be parsed.
    """
    src = Path(path)
    if not src.exists():
        logger.warning(f"⚠️ No baseline found at {src}; regression comparison skipped")
        return None
    return load_results(src)


def save_regression_report(summary, results_path: PathLike) -> Path:
    """Write regression-results.json next to the results file."""
    out = Path(results_path).parent / "regression-results.json"
    _write_json(out, summary.to_dict())
    logger.info(f"📝 Regression report saved to {out}")
    return out


# ==================== Test Cases ====================

def load_test_cases(path: PathLike) -> List[TestCase]:
    """Load test cases from a JSON array (or ``{"test_cases": [...]}``)."""
    src = Path(path)
    try:
        with src.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise PersistenceError(f"Test case file not found: {src}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Failed reading {src}: {e}") from e

    if isinstance(data, dict):
        data = data.get("test_cases", data.get("testCases"))
    if not isinstance(data, list):
        raise PersistenceError(f"{src}: expected a JSON array of test cases")

    try:
        cases = [TestCase.from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"{src}: malformed test case: {e}") from e

    logger.info(f"📂 Loaded {len(cases)} test cases from {src}")
    return cases


def save_report(data: Dict[str, Any], path: PathLike) -> Path:
    """Write any JSON report (e.g. an orchestration report)."""
    out = _write_json(path, data)
    logger.info(f"📝 Report saved to {out}")
    return out
