# spectra/security_probes/custom_payloads.py
"""
Custom Payload Probe

Caller-supplied suspicious values per field. A trial that *succeeds* with a
suspicious value means the input was not rejected.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from spectra.models import TestCase
from spectra.security_probes.base import (
    AbstractSecurityProbe,
    ProbeOutcome,
    SecurityFinding,
    Severity,
    with_field,
)

logger = logging.getLogger(__name__)


class CustomPayloadProbe(AbstractSecurityProbe):
    """Suspicious values that the endpoint should reject."""

    def __init__(self, payloads: Optional[Dict[str, List[str]]] = None, **kwargs):
        super().__init__(**kwargs)
        self.payloads = dict(payloads or {})

    @property
    def name(self) -> str:
        return "custom_payloads"

    async def run_async(self, runner, test_case: TestCase, client: httpx.AsyncClient, outcome: ProbeOutcome):
        for field_name, values in self.payloads.items():
            for value in values:
                result = await self.trial(runner, client, with_field(test_case, field_name, value), outcome)
                if not result.success:
                    continue

                logger.warning(f"🚨 {test_case.id}: suspicious value accepted for '{field_name}'")
                outcome.findings.append(SecurityFinding(
                    probe=self.name,
                    severity=Severity.HIGH,
                    message=f"Request succeeded with suspicious value for '{field_name}'",
                    parameter=field_name,
                    payload=value,
                    recommendation="Validate and reject malformed input server-side.",
                ))
                break
