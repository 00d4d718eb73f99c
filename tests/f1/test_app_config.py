"""Tests for app configuration (F1).

Tests the configuration loading, defaults, and caching.
"""

from pathlib import Path

from examsync.config.app_config import (
    CONFIG_FILE,
    AppConfig,
    SyncConfig,
    clear_config_cache,
    load_app_config,
)


class TestLoadAppConfig:
    """Tests for load_app_config function."""

    def test_load_config_from_yaml(self):
        """Loads config from examsync_v1.yaml (or defaults)."""
        clear_config_cache()
        config = load_app_config()
        assert isinstance(config, AppConfig)
        assert isinstance(config.sync, SyncConfig)

    def test_config_is_cached(self):
        """Second call returns the cached instance."""
        clear_config_cache()
        assert load_app_config() is load_app_config()

    def test_force_reload(self):
        clear_config_cache()
        first = load_app_config()
        assert load_app_config(force_reload=True) is not first

    def test_missing_file_uses_defaults(self, tmp_path):
        """A missing file yields the built-in defaults."""
        config = load_app_config(config_path=tmp_path / "missing.yaml")
        assert config.sync.max_retries == 12
        assert config.sync.composite_match_tolerance_seconds == 1.0
        assert config.sync.history_page_size == 50
        assert config.exam.passing_score == 70
        assert config.db_path == Path("data/examsync.db")

    def test_partial_file_merges_defaults(self, tmp_path):
        """Keys absent from the file keep their defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "sync:\n  max_retries: 3\nexam:\n  domains:\n    - id: d1\n      name: Domain 1\n",
            encoding="utf-8",
        )
        config = load_app_config(config_path=path)
        assert config.sync.max_retries == 3
        assert config.sync.history_page_size == 50
        assert [d.id for d in config.exam.domains] == ["d1"]

    def test_explicit_path_not_cached(self, tmp_path):
        clear_config_cache()
        default = load_app_config()
        load_app_config(config_path=tmp_path / "missing.yaml")
        assert load_app_config() is default


class TestShippedConfig:
    def test_shipped_file_exists(self):
        """The repository ships a default config file."""
        assert Path(__file__).parents[2].joinpath(CONFIG_FILE).exists()

    def test_time_limit_ms(self):
        config = load_app_config(config_path=Path(__file__).parents[2] / CONFIG_FILE)
        assert config.exam.time_limit_ms == config.exam.time_limit_minutes * 60_000
        assert len(config.exam.domains) == 4
