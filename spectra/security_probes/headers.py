# spectra/security_probes/headers.py
"""
Security Headers Probe

One request; flags every required security header that is absent.
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
)

logger = logging.getLogger(__name__)

BASELINE_HEADERS = ["X-Content-Type-Options"]

STRICT_HEADERS = [
    "X-Content-Type-Options",
    "X-Frame-Options",
    "Content-Security-Policy",
    "Strict-Transport-Security",
    "X-XSS-Protection",
]


class SecurityHeadersProbe(AbstractSecurityProbe):
    """Check for missing security headers."""

    def __init__(self, strict: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.strict = strict

    @property
    def name(self) -> str:
        return "headers"

    @property
    def required_headers(self):
        return STRICT_HEADERS if self.strict else BASELINE_HEADERS

    async def run_async(self, runner, test_case: TestCase, client: httpx.AsyncClient, outcome: ProbeOutcome):
        result = await self.trial(runner, client, test_case, outcome)
        if result.response is None:
            raise RuntimeError(f"No response to inspect: {result.error}")

        present = {k.lower() for k in result.response.headers}
        for header in self.required_headers:
            if header.lower() in present:
                continue
            outcome.findings.append(SecurityFinding(
                probe=self.name,
                severity=Severity.MEDIUM,
                message=f"Missing security header: {header}",
                parameter=header,
                recommendation=f"Add the {header} response header.",
            ))

        if outcome.findings:
            logger.warning(
                f"🚨 {test_case.id}: missing headers {[f.parameter for f in outcome.findings]}"
            )
