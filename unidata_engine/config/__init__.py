"""Configuration package exports."""

from .loader import (
    ConfigLocator,
    ConfigRepository,
    apply_env_overrides,
    home_root,
    slugify,
    validate_for_startup,
)
from .models import (
    AIConfig,
    EngineSettings,
    FetchConfig,
    JobConfig,
    LoggingConfig,
    RateLimitConfig,
    ReviewConfig,
    ScheduleConfig,
    ScheduleType,
    StorageConfig,
    SubjectConfig,
)

__all__ = [
    "AIConfig",
    "ConfigLocator",
    "ConfigRepository",
    "EngineSettings",
    "FetchConfig",
    "JobConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "ReviewConfig",
    "ScheduleConfig",
    "ScheduleType",
    "StorageConfig",
    "SubjectConfig",
    "apply_env_overrides",
    "home_root",
    "slugify",
    "validate_for_startup",
]
