# spectra/security_probes/xss.py
"""
Script Injection (XSS) Probe

Writes script payloads into each injectable field and flags any payload
reflected verbatim in the response body.
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


class XSSProbe(AbstractSecurityProbe):
    """Test for reflected script injection."""

    TEST_PAYLOADS = [
        "<script>alert('XSS')</script>",
        "<img src=x onerror=alert('XSS')>",
        "<svg onload=alert('XSS')>",
        "javascript:alert('XSS')",
    ]

    @property
    def name(self) -> str:
        return "xss"

    async def run_async(self, runner, test_case: TestCase, client: httpx.AsyncClient, outcome: ProbeOutcome):
        for field_name, trials in self.field_trials(test_case, self.TEST_PAYLOADS):
            for payload, trial_case in trials:
                result = await self.trial(runner, client, trial_case, outcome)
                if payload not in body_text(result):
                    continue

                logger.warning(f"🚨 Reflected payload in '{field_name}' for {test_case.id}")
                outcome.findings.append(SecurityFinding(
                    probe=self.name,
                    severity=Severity.HIGH,
                    message=f"Payload reflected unescaped for parameter '{field_name}'",
                    parameter=field_name,
                    payload=payload,
                    evidence=payload,
                    recommendation="Encode output and validate input; set a Content-Security-Policy.",
                ))
                break
