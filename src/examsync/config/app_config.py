"""Application configuration loader.

Loads centralized configuration from data/config/examsync_v1.yaml
with fallback to built-in defaults.

Usage:
    from examsync.config.app_config import load_app_config

    config = load_app_config()
    tolerance = config.sync.composite_match_tolerance_seconds
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/examsync_v1.yaml")


@dataclass
class ApiConfig:
    """Remote store connection settings."""

    base_url: str = "http://localhost:3000/api"
    timeout_seconds: float = 15.0
    access_token_env: str | None = "EXAMSYNC_ACCESS_TOKEN"

    def get_access_token(self) -> str | None:
        """Get bearer token from environment variable."""
        if self.access_token_env:
            return os.environ.get(self.access_token_env)
        return None


@dataclass
class SyncConfig:
    """Sync cadence and merge policy constants."""

    auto_sync_enabled: bool = True
    auto_sync_interval_seconds: float = 300.0
    connectivity_poll_seconds: float = 30.0
    connectivity_timeout_seconds: float = 5.0
    max_retries: int = 12
    retry_base_delay_seconds: float = 5.0
    retry_max_delay_seconds: float = 30.0
    history_page_size: int = 50
    composite_match_tolerance_seconds: float = 1.0
    orphan_match_window_seconds: float = 60.0


@dataclass
class ExamDomain:
    """A knowledge domain of the exam blueprint."""

    id: str
    name: str


@dataclass
class ExamConfig:
    """Exam-type defaults."""

    exam_type_id: str = "CLF-C02"
    questions_per_exam: int = 65
    passing_score: int = 70
    time_limit_minutes: int = 90
    domains: list[ExamDomain] = field(default_factory=list)

    @property
    def time_limit_ms(self) -> int:
        return self.time_limit_minutes * 60 * 1000


@dataclass
class AppConfig:
    """Application-wide configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    exam: ExamConfig = field(default_factory=ExamConfig)
    paths: dict[str, str] = field(default_factory=dict)

    @property
    def db_path(self) -> Path:
        return Path(self.paths.get("db_path", "data/examsync.db"))


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "api": {
            "base_url": "http://localhost:3000/api",
            "timeout_seconds": 15.0,
            "access_token_env": "EXAMSYNC_ACCESS_TOKEN",
        },
        "sync": {
            "auto_sync_enabled": True,
            "auto_sync_interval_seconds": 300.0,
            "connectivity_poll_seconds": 30.0,
            "connectivity_timeout_seconds": 5.0,
            "max_retries": 12,
            "retry_base_delay_seconds": 5.0,
            "retry_max_delay_seconds": 30.0,
            "history_page_size": 50,
            "composite_match_tolerance_seconds": 1.0,
            "orphan_match_window_seconds": 60.0,
        },
        "exam": {
            "exam_type_id": "CLF-C02",
            "questions_per_exam": 65,
            "passing_score": 70,
            "time_limit_minutes": 90,
            "domains": [],
        },
        "paths": {
            "db_path": "data/examsync.db",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    api_data = {**defaults["api"], **(data.get("api") or {})}
    api = ApiConfig(
        base_url=str(api_data["base_url"]).rstrip("/"),
        timeout_seconds=float(api_data["timeout_seconds"]),
        access_token_env=api_data.get("access_token_env"),
    )

    sync_data = {**defaults["sync"], **(data.get("sync") or {})}
    sync = SyncConfig(
        auto_sync_enabled=bool(sync_data["auto_sync_enabled"]),
        auto_sync_interval_seconds=float(sync_data["auto_sync_interval_seconds"]),
        connectivity_poll_seconds=float(sync_data["connectivity_poll_seconds"]),
        connectivity_timeout_seconds=float(sync_data["connectivity_timeout_seconds"]),
        max_retries=int(sync_data["max_retries"]),
        retry_base_delay_seconds=float(sync_data["retry_base_delay_seconds"]),
        retry_max_delay_seconds=float(sync_data["retry_max_delay_seconds"]),
        history_page_size=int(sync_data["history_page_size"]),
        composite_match_tolerance_seconds=float(
            sync_data["composite_match_tolerance_seconds"]
        ),
        orphan_match_window_seconds=float(sync_data["orphan_match_window_seconds"]),
    )

    exam_data = {**defaults["exam"], **(data.get("exam") or {})}
    exam = ExamConfig(
        exam_type_id=exam_data["exam_type_id"],
        questions_per_exam=int(exam_data["questions_per_exam"]),
        passing_score=int(exam_data["passing_score"]),
        time_limit_minutes=int(exam_data["time_limit_minutes"]),
        domains=[
            ExamDomain(id=d["id"], name=d.get("name", d["id"]))
            for d in exam_data.get("domains") or []
        ],
    )

    paths = {**defaults["paths"], **(data.get("paths") or {})}

    return AppConfig(api=api, sync=sync, exam=exam, paths=paths)


def load_app_config(
    force_reload: bool = False,
    config_path: Path | None = None,
) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.
        config_path: Alternate YAML file. Defaults to CONFIG_FILE.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload and config_path is None:
        return _cached_config

    path = config_path or CONFIG_FILE
    data: dict[str, Any]

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config", missing=str(path))
        data = _get_defaults()

    config = _parse_config(data)
    if config_path is None:
        _cached_config = config
    return config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
