"""Tests for configuration loading and validation."""

from decimal import Decimal
from pathlib import Path

import yaml

from docmatch.utils.config import (
    AnalyzerConfig,
    ApiConfig,
    AppConfig,
    DatabaseConfig,
    ExtractionConfig,
    MatchingConfig,
    MatchingPolicyConfig,
    StorageConfig,
    ValidationConfig,
    load_config,
)


class TestDatabaseConfig:
    """Tests for DatabaseConfig defaults."""

    def test_defaults(self) -> None:
        cfg = DatabaseConfig()
        assert cfg.url == "sqlite:///docmatch.db"
        assert cfg.echo is False


class TestStorageConfig:
    def test_defaults(self) -> None:
        cfg = StorageConfig()
        assert cfg.root == "storage"
        assert cfg.archive_dir == "archive"


class TestAnalyzerConfig:
    """Tests for AnalyzerConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = AnalyzerConfig()
        assert cfg.default_lang == "eng"
        assert cfg.pdf_dpi == 300
        assert cfg.tesseract_cmd is None
        assert cfg.max_attempts == 3
        assert cfg.initial_delay_seconds == 5.0
        assert cfg.backoff_factor == 2.0

    def test_override(self) -> None:
        cfg = AnalyzerConfig(default_lang="fra", max_attempts=5)
        assert cfg.default_lang == "fra"
        assert cfg.max_attempts == 5


class TestExtractionConfig:
    def test_defaults(self) -> None:
        cfg = ExtractionConfig()
        assert cfg.templates_path == "configs/templates.yaml"
        assert cfg.title_scan_lines == 10


class TestValidationConfig:
    def test_defaults(self) -> None:
        cfg = ValidationConfig()
        assert cfg.rules_path == "configs/validation_rules.yaml"


class TestMatchingConfig:
    """Tests for matching interval and default policy."""

    def test_defaults(self) -> None:
        cfg = MatchingConfig()
        assert cfg.interval_seconds == 60
        assert cfg.default_policy.is_3way_matching is False
        assert cfg.default_policy.quantity_variance_pct == Decimal("5")
        assert cfg.default_policy.price_variance_absolute == Decimal("0.50")

    def test_policy_from_strings_is_exact(self) -> None:
        cfg = MatchingPolicyConfig(price_variance_absolute="0.10")
        assert cfg.price_variance_absolute == Decimal("0.10")


class TestApiConfig:
    def test_defaults(self) -> None:
        cfg = ApiConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 8000
        assert cfg.start_scheduler is True


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.database, DatabaseConfig)
        assert isinstance(cfg.storage, StorageConfig)
        assert isinstance(cfg.analyzer, AnalyzerConfig)
        assert isinstance(cfg.matching, MatchingConfig)
        assert cfg.log_level == "INFO"
        assert cfg.log_file is None

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            matching=MatchingConfig(interval_seconds=5),
            log_level="DEBUG",
        )
        assert cfg.matching.interval_seconds == 5
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_default_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.analyzer.default_lang == "eng"
        assert cfg.matching.default_policy.price_variance_absolute == Decimal("0.50")

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.database.url == "sqlite:///docmatch.db"

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "database": {"url": "sqlite:///custom.db"},
            "matching": {
                "interval_seconds": 15,
                "default_policy": {"is_3way_matching": True},
            },
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.database.url == "sqlite:///custom.db"
        assert cfg.matching.interval_seconds == 15
        assert cfg.matching.default_policy.is_3way_matching is True
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)
