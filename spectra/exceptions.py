# spectra/exceptions.py
"""
Error taxonomy for the test execution engine.

Per-test-case failures (transport errors, assertion failures, schema errors)
are recovered into the result model and never raised. Only the conditions
below cross module boundaries.
"""

from __future__ import annotations


class SpectraError(Exception):
    """Base exception for all engine errors."""
    pass


class PersistenceError(SpectraError):
    """Results or baseline could not be written/read. Fatal for the run."""
    pass


class BaselineFormatError(PersistenceError):
    """Baseline file exists but is not valid JSON or has the wrong shape."""
    pass


class OracleError(SpectraError):
    """Decision oracle call failed."""
    pass


class OracleResponseError(OracleError):
    """Decision oracle returned content that does not match the expected shape."""
    pass


class OrchestrationError(SpectraError):
    """Orchestrator was configured or driven incorrectly."""
    pass
