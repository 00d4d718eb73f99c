"""Configuration package for examsync."""

from examsync.config.app_config import (
    ApiConfig,
    AppConfig,
    ExamConfig,
    ExamDomain,
    SyncConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "ApiConfig",
    "AppConfig",
    "ExamConfig",
    "ExamDomain",
    "SyncConfig",
    "clear_config_cache",
    "load_app_config",
]
