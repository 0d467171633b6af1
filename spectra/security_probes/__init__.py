# spectra/security_probes/__init__.py
"""
Security probe families for the non-functional runner.
"""

from __future__ import annotations

from typing import List

from spectra.nonfunctional_types import SecurityTestConfig
from spectra.security_probes.base import (
    AbstractSecurityProbe,
    ProbeOutcome,
    SecurityFinding,
    Severity,
)
from spectra.security_probes.custom_payloads import CustomPayloadProbe
from spectra.security_probes.headers import SecurityHeadersProbe
from spectra.security_probes.sql_injection import SQLInjectionProbe
from spectra.security_probes.xss import XSSProbe

__all__ = [
    "AbstractSecurityProbe",
    "ProbeOutcome",
    "SecurityFinding",
    "Severity",
    "SQLInjectionProbe",
    "XSSProbe",
    "SecurityHeadersProbe",
    "CustomPayloadProbe",
    "build_probes",
]


def build_probes(config: SecurityTestConfig, probe_timeout_s: float = 120.0) -> List[AbstractSecurityProbe]:
    """Instantiate the probe families enabled by a security config."""
    probes: List[AbstractSecurityProbe] = []
    if config.sql_injection:
        probes.append(SQLInjectionProbe(probe_timeout_s=probe_timeout_s))
    if config.xss:
        probes.append(XSSProbe(probe_timeout_s=probe_timeout_s))
    if config.headers:
        probes.append(SecurityHeadersProbe(strict=config.strict_security, probe_timeout_s=probe_timeout_s))
    if config.custom_payloads:
        probes.append(CustomPayloadProbe(payloads=config.custom_payloads, probe_timeout_s=probe_timeout_s))
    return probes
