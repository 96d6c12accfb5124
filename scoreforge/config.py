"""
Engine configuration — single source of truth.

Environment variables (prefixed ``SCOREFORGE_``) may be placed in the root .env file.
This module loads them via pydantic-settings and exposes a singleton `settings`.
"""

import logging
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

_config_logger = logging.getLogger("scoreforge.config")

# Resolve paths relative to repo root (one level up from this file)
_REPO_ROOT = Path(__file__).resolve().parent.parent  # scoreforge/config.py → repo root
_ENV_FILE = _REPO_ROOT / ".env"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    # ── General ──────────────────────────────────────────────
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # ── Configuration validation ─────────────────────────────
    weight_tolerance: float = Field(
        default=0.01, ge=0,
        description="Allowed drift of the active category weight total from 100",
    )
    default_band_increment: float = Field(
        default=1.0, gt=0,
        description="Expected step between adjacent bucket bands when a scorecard sets none",
    )
    strict_variable_weights: bool = Field(
        default=False,
        description="Treat variable-weight / category-weight mismatches as errors instead of warnings",
    )

    # ── Evaluation ───────────────────────────────────────────
    reason_code_limit: int = Field(default=3, ge=0)

    # ── Bulk processing ──────────────────────────────────────
    bulk_workers: int = Field(default=1, ge=1)
    bulk_chunk_size: int = Field(default=500, ge=1)
    bulk_preview_size: int = Field(default=10, ge=0)
    histogram_bands: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _normalize_log_level(self) -> "Settings":
        """Upper-case the log level and fall back to INFO on unknown names."""
        level = (self.log_level or "").strip().upper()
        if level not in _LOG_LEVELS:
            _config_logger.warning("Unknown log level %r, using INFO", self.log_level)
            level = "INFO"
        self.log_level = level
        return self

    model_config = {
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "env_prefix": "SCOREFORGE_",
        "extra": "ignore",
    }


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the ``scoreforge`` logger tree."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("scoreforge").setLevel(level or settings.log_level)
