# spectra/security_probes/sql_injection.py
"""
SQL Injection Probe

Writes SQL fragments into each injectable field and looks for database
error text in the response body.
"""

from __future__ import annotations

import logging

import httpx

from spectra.models import TestCase
from spectra.security_probes.base import (
    AbstractSecurityProbe,
    ProbeOutcome,
    SecurityFinding,
    Severity,
    body_text,
)

logger = logging.getLogger(__name__)


class SQLInjectionProbe(AbstractSecurityProbe):
    """Test for SQL injection vulnerabilities."""

    TEST_PAYLOADS = [
        "' OR '1'='1",
        "'; DROP TABLE users; --",
        "1'; SELECT * FROM users; --",
        "1 UNION SELECT username, password FROM users",
    ]

    # Database error substrings (matched case-insensitively)
    SQL_ERROR_PATTERNS = [
        "SQLSTATE",
        "ORA-",
        "MySQL",
        "syntax error",
        "SQL syntax",
        "driver error",
        "Incorrect syntax",
        "Warning: mysql_",
        "Warning: pg_",
        "Warning: SQLite3",
        "database error",
        "unclosed quotation mark",
        "You have an error in your SQL syntax",
    ]

    @property
    def name(self) -> str:
        return "sql_injection"

    def match_error(self, text: str):
        lowered = text.lower()
        for pattern in self.SQL_ERROR_PATTERNS:
            if pattern.lower() in lowered:
                return pattern
        return None

    async def run_async(self, runner, test_case: TestCase, client: httpx.AsyncClient, outcome: ProbeOutcome):
        """Test each field with SQL injection payloads."""
        for field_name, trials in self.field_trials(test_case, self.TEST_PAYLOADS):
            for payload, trial_case in trials:
                result = await self.trial(runner, client, trial_case, outcome)
                pattern = self.match_error(body_text(result))
                if pattern is None:
                    continue

                logger.warning(f"🚨 SQL injection indicator in '{field_name}' for {test_case.id}")
                outcome.findings.append(SecurityFinding(
                    probe=self.name,
                    severity=Severity.CRITICAL,
                    message=f"SQL injection vulnerability detected in parameter '{field_name}'",
                    parameter=field_name,
                    payload=payload,
                    evidence=pattern,
                    recommendation="Use parameterized queries or prepared statements. Never concatenate user input into SQL queries.",
                ))
                break  # One finding per parameter is enough
