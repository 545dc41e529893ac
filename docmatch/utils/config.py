"""Configuration management for the document matching system.

Loads and validates YAML configuration with sensible defaults
for persistence, storage, analysis, extraction, validation, and matching.
"""

import logging
from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Configuration for the relational document store."""

    url: str = "sqlite:///docmatch.db"
    echo: bool = False


class StorageConfig(BaseModel):
    """Configuration for inbound channel folders and the archive."""

    root: str = "storage"
    archive_dir: str = "archive"


class AnalyzerConfig(BaseModel):
    """Configuration for the document analysis backend and its retries."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 6
    pdf_dpi: int = 300
    max_attempts: int = 3
    initial_delay_seconds: float = 5.0
    backoff_factor: float = 2.0


class ExtractionConfig(BaseModel):
    """Configuration for field extraction."""

    templates_path: str = "configs/templates.yaml"
    title_scan_lines: int = 10


class ValidationConfig(BaseModel):
    """Configuration for validation rules engine."""

    rules_path: str = "configs/validation_rules.yaml"


class MatchingPolicyConfig(BaseModel):
    """Tolerances applied to suppliers without their own policy."""

    is_3way_matching: bool = False
    quantity_variance_pct: Decimal = Decimal("5")
    price_variance_absolute: Decimal = Decimal("0.50")


class MatchingConfig(BaseModel):
    """Configuration for the reconciliation cycle."""

    interval_seconds: int = 60
    default_policy: MatchingPolicyConfig = Field(default_factory=MatchingPolicyConfig)


class ApiConfig(BaseModel):
    """Bind address of the REST server."""

    host: str = "0.0.0.0"
    port: int = 8000
    start_scheduler: bool = True


class AppConfig(BaseModel):
    """Top-level application configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    log_level: str = "INFO"
    log_file: str | None = None


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
