# spectra/validators.py
"""
Assertion library: pure functions validating one response property.

Each function returns exactly one AssertionResult and never raises.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from spectra.models import AssertionResult

logger = logging.getLogger(__name__)

STATUS_CODE_ASSERTION = "Status code validation"
SCHEMA_ASSERTION = "Schema validation"
RESPONSE_TIME_ASSERTION = "Response time validation"
HEADERS_ASSERTION = "Headers validation"

NO_SCHEMA_INFO = "No schema validation performed (no schema specified)"

_INT32 = (-(2 ** 31), 2 ** 31 - 1)
_INT64 = (-(2 ** 63), 2 ** 63 - 1)


# ==================== OpenAPI Formats ====================

def _build_format_checker() -> FormatChecker:
    """Standard formats plus the OpenAPI data-type formats."""
    checker = FormatChecker()

    def _is_int_in(bounds):
        def check(value: Any) -> bool:
            if isinstance(value, bool) or not isinstance(value, int):
                return True
            return bounds[0] <= value <= bounds[1]
        return check

    def _is_number(value: Any) -> bool:
        return not isinstance(value, str)

    def _is_byte(value: Any) -> bool:
        if not isinstance(value, str):
            return True
        try:
            base64.b64decode(value, validate=True)
            return True
        except (binascii.Error, ValueError):
            return False

    checker.checks("int32")(_is_int_in(_INT32))
    checker.checks("int64")(_is_int_in(_INT64))
    checker.checks("float")(_is_number)
    checker.checks("double")(_is_number)
    checker.checks("byte")(_is_byte)
    checker.checks("binary")(lambda value: True)
    checker.checks("password")(lambda value: True)
    return checker


FORMAT_CHECKER = _build_format_checker()


def _json_pointer(parts: Iterable[Any]) -> str:
    """RFC 6901 pointer for a jsonschema error path."""
    tokens = [str(p).replace("~", "~0").replace("/", "~1") for p in parts]
    return "/" + "/".join(tokens) if tokens else ""


# ==================== Assertions ====================

def validate_status_code(actual: int, expected: int) -> AssertionResult:
    """Success iff the observed status equals the expected one."""
    if actual == expected:
        return AssertionResult(name=STATUS_CODE_ASSERTION, success=True)
    return AssertionResult(
        name=STATUS_CODE_ASSERTION,
        success=False,
        error=f"Expected status code {expected}, got {actual}",
    )


def validate_against_schema(body: Any, schema: Optional[Dict[str, Any]]) -> AssertionResult:
    """
    Validate a response body against a JSON schema.

    Every violation is collected in one pass and reported in a single
    error string. A malformed schema yields one failing assertion naming
    the compilation error.
    """
    if not schema:
        return AssertionResult(name=SCHEMA_ASSERTION, success=True, info=NO_SCHEMA_INFO)

    try:
        validator_cls = validator_for(schema, default=Draft7Validator)
        validator_cls.check_schema(schema)
        validator = validator_cls(schema, format_checker=FORMAT_CHECKER)
        errors = sorted(validator.iter_errors(body), key=lambda e: _json_pointer(e.absolute_path))
    except SchemaError as e:
        logger.warning(f"Invalid JSON schema: {e.message}")
        return AssertionResult(
            name=SCHEMA_ASSERTION,
            success=False,
            error=f"Invalid schema: {e.message}",
        )
    except Exception as e:
        logger.warning(f"Schema compilation failed: {e}")
        return AssertionResult(
            name=SCHEMA_ASSERTION,
            success=False,
            error=f"Schema compilation failed: {e}",
        )

    if not errors:
        return AssertionResult(name=SCHEMA_ASSERTION, success=True)

    messages = [
        f"{_json_pointer(err.absolute_path) or '/'} {err.message}"
        for err in errors
    ]
    return AssertionResult(
        name=SCHEMA_ASSERTION,
        success=False,
        error="Schema validation failed: " + "; ".join(messages),
    )


def validate_response_time(duration_ms: float, max_ms: float) -> AssertionResult:
    """Success iff duration <= max."""
    if duration_ms <= max_ms:
        return AssertionResult(name=RESPONSE_TIME_ASSERTION, success=True)
    return AssertionResult(
        name=RESPONSE_TIME_ASSERTION,
        success=False,
        error=f"Response time {duration_ms:.0f}ms exceeds maximum {max_ms:.0f}ms",
    )


def validate_headers(actual: Mapping[str, str], expected: Mapping[str, str]) -> AssertionResult:
    """Every expected header must be present (case-insensitive name) with an equal value."""
    lowered = {str(k).lower(): v for k, v in (actual or {}).items()}
    errors = []

    for name, value in (expected or {}).items():
        got = lowered.get(str(name).lower())
        if got is None:
            errors.append(f"header {name} missing")
        elif str(got) != str(value):
            errors.append(f"header {name} != {value!r} (got {got!r})")

    if errors:
        return AssertionResult(name=HEADERS_ASSERTION, success=False, error="; ".join(errors))
    return AssertionResult(name=HEADERS_ASSERTION, success=True)
