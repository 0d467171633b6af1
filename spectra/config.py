# spectra/config.py
"""
Configuration for the test execution engine.

- Settings: env-driven (SPECTRA_* variables or a .env file at repo root)
- OrchestratorConfig: adaptive orchestrator knobs, loadable from env or YAML
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_PHASES: List[str] = ["functional", "boundary", "error", "security", "performance"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """
    Centralized, env-driven configuration for runs.
    Override via environment variables (SPECTRA_ prefix) or a .env file.
    """
    base_url: str = "http://localhost:3000"
    timeout_s: float = 30.0
    verify_ssl: bool = True
    default_headers: Dict[str, str] = Field(default_factory=dict)

    # Path placeholder resolution
    allow_default_fixtures: bool = True
    fixtures: Dict[str, str] = Field(default_factory=dict)

    # Persistence
    results_path: str = "test-results.json"
    baseline_path: str = "regression-baseline.json"
    step_log_dir: Optional[str] = None

    log_level: str = "INFO"

    # Decision oracle
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SPECTRA_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    oracle_model: str = "gpt-4o-mini"
    oracle_timeout_s: float = 10.0

    # Pydantic v2 config: ignore unknown envs, load .env in UTF-8
    model_config = SettingsConfigDict(
        env_prefix="SPECTRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class OrchestratorConfig:
    """Configuration for the adaptive orchestrator."""
    phases: List[str] = field(default_factory=lambda: list(DEFAULT_PHASES))
    phase_dependencies: Dict[str, List[str]] = field(default_factory=dict)

    # Adaptation
    enable_adaptation: bool = True
    max_failure_threshold: float = 0.3
    analysis_cadence: int = 5
    recent_error_window: int = 10

    # Timeouts (seconds); oracle must stay shorter than the HTTP timeout
    oracle_timeout_s: float = 10.0
    max_pause_s: float = 5.0
    final_grace_s: float = 5.0

    # Phases executed through the non-functional extensions
    nonfunctional_phases: List[str] = field(default_factory=lambda: ["performance", "security"])

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load configuration from environment variables."""
        phases_raw = os.getenv("SPECTRA_PHASES")
        phases = [p.strip() for p in phases_raw.split(",") if p.strip()] if phases_raw else list(DEFAULT_PHASES)
        return cls(
            phases=phases,
            enable_adaptation=_env_bool("SPECTRA_ENABLE_ADAPTATION", "true"),
            max_failure_threshold=float(os.getenv("SPECTRA_MAX_FAILURE_THRESHOLD", "0.3")),
            analysis_cadence=int(os.getenv("SPECTRA_ANALYSIS_CADENCE", "5")),
            oracle_timeout_s=float(os.getenv("SPECTRA_ORACLE_TIMEOUT_S", "10")),
            max_pause_s=float(os.getenv("SPECTRA_MAX_PAUSE_S", "5")),
            final_grace_s=float(os.getenv("SPECTRA_FINAL_GRACE_S", "5")),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "OrchestratorConfig":
        """Load configuration from YAML file."""
        import yaml
        with open(path, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            logger.warning(f"Ignoring unknown orchestrator config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in config_dict.items() if k in known})


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard line format."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
