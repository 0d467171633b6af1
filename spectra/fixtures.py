# spectra/fixtures.py
"""
Path placeholder resolution.

Placeholders like ``{id}`` in an endpoint template are filled from, in order:
  1. the request payload (the key is consumed so it is not sent twice)
  2. the test case's own fixture mapping
  3. the resolver's injected fixture mapping
  4. a built-in default guess (can be disabled)

Step 4 keeps happy-path tests from failing on missing fixture data, at the
cost of testing against a guessed id. Every placeholder filled that way is
reported back so results can flag it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from spectra.models import PLACEHOLDER_RE, TestCase

logger = logging.getLogger(__name__)

DEFAULT_FIXTURES: Dict[str, str] = {
    "id": "2",
    "userId": "2",
    "productId": "2",
    "todoId": "2",
    "department": "Engineering",
}
GENERIC_DEFAULT = "1"

# Generator output that means "no real value was supplied"
_PLACEHOLDER_VALUES = {"", "valid_string_value"}


@dataclass
class ResolvedPath:
    """Outcome of resolving one test case's endpoint."""
    path: str
    payload: Optional[Dict[str, Any]]
    consumed: List[str] = field(default_factory=list)
    fallbacks: Dict[str, str] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)


def _usable(value: Any) -> bool:
    if value is None:
        return False
    return not (isinstance(value, str) and value.strip() in _PLACEHOLDER_VALUES)


class FixtureResolver:
    """Injectable placeholder resolution with fallback tracking."""

    def __init__(
        self,
        fixtures: Optional[Mapping[str, Any]] = None,
        allow_defaults: bool = True,
        defaults: Optional[Mapping[str, str]] = None,
    ):
        self.fixtures: Dict[str, Any] = dict(fixtures or {})
        self.allow_defaults = allow_defaults
        self.defaults: Dict[str, str] = dict(DEFAULT_FIXTURES if defaults is None else defaults)

    def resolve(self, test_case: TestCase) -> ResolvedPath:
        payload = dict(test_case.request) if isinstance(test_case.request, dict) else None
        case_fixtures = test_case.fixtures or {}
        consumed: List[str] = []
        fallbacks: Dict[str, str] = {}
        unresolved: List[str] = []
        seen: Dict[str, str] = {}

        def substitute(match) -> str:
            name = match.group(1)
            if name in seen:
                return seen[name]
            value = _lookup(match)
            if name not in unresolved:
                seen[name] = value
            return value

        def _lookup(match) -> str:
            name = match.group(1)

            if payload is not None and name in payload:
                value = payload.pop(name)
                consumed.append(name)
                if _usable(value):
                    return str(value)

            for source in (case_fixtures, self.fixtures):
                if _usable(source.get(name)):
                    return str(source[name])

            if self.allow_defaults:
                guess = self.defaults.get(name, GENERIC_DEFAULT)
                fallbacks[name] = guess
                return guess

            if name not in unresolved:
                unresolved.append(name)
            return match.group(0)

        path = PLACEHOLDER_RE.sub(substitute, test_case.endpoint)

        if fallbacks:
            logger.warning(
                f"⚠️ {test_case.id}: path placeholders filled with default guesses: "
                f"{', '.join(f'{k}={v}' for k, v in fallbacks.items())}"
            )
        if unresolved:
            logger.warning(f"⚠️ {test_case.id}: unresolved path placeholders: {unresolved}")

        return ResolvedPath(
            path=path,
            payload=payload if payload is not None else test_case.request,
            consumed=consumed,
            fallbacks=fallbacks,
            unresolved=unresolved,
        )

    def describe_fallbacks(self, fallbacks: Mapping[str, str]) -> Tuple[str, ...]:
        return tuple(f"{{{k}}}={v}" for k, v in fallbacks.items())
