"""Configuration loading helpers for the ingestion engine."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import structlog
import yaml

from .models import EngineSettings, SubjectConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
SETTINGS_FILENAME = "engine.yaml"
SUBJECT_CONFIG_SUFFIX = ".yaml"
HOME_ENV = "UNIDATA_HOME"

logger = structlog.get_logger("unidata_engine.config")


def slugify(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-")


def home_root(project_root: Path | None = None) -> Path:
    """Engine home: ``UNIDATA_HOME`` when set, else the project root or cwd."""

    env_root = os.environ.get(HOME_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (project_root or Path.cwd()).resolve()


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _bool(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off"}


# env var -> (path into the settings payload, caster)
_ENV_OVERRIDES: dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
    "UNIDATA_ENV": (("env",), str),
    "UNIDATA_REQUEST_DELAY": (("rate_limit", "request_delay"), float),
    "UNIDATA_SUBJECT_DELAY": (("rate_limit", "subject_delay"), float),
    "UNIDATA_MAX_RETRIES": (("rate_limit", "max_retries"), int),
    "UNIDATA_BACKOFF_MULTIPLIER": (("rate_limit", "backoff_multiplier"), float),
    "UNIDATA_FETCH_TIMEOUT": (("fetch", "timeout"), float),
    "UNIDATA_USER_AGENTS": (("fetch", "user_agents"), _csv),
    "UNIDATA_REVIEW_THRESHOLD": (("review", "threshold"), float),
    "UNIDATA_MAX_CONCURRENT_JOBS": (("job", "max_concurrent_jobs"), int),
    "UNIDATA_JOB_TIMEOUT": (("job", "timeout"), float),
    "UNIDATA_AI_ENABLED": (("ai", "enabled"), _bool),
    "UNIDATA_AI_API_KEY": (("ai", "api_key"), str),
    "UNIDATA_AI_ENDPOINT": (("ai", "endpoint"), str),
    "UNIDATA_LOG_LEVEL": (("logging", "level"), str.upper),
    "UNIDATA_STORE": (("storage", "backend"), str.lower),
    "UNIDATA_STORE_PATH": (("storage", "path"), str),
    "UNIDATA_MONGO_URI": (("storage", "mongo_uri"), str),
}


def apply_env_overrides(payload: dict, environ: Mapping[str, str] | None = None) -> dict:
    """Return a copy of ``payload`` with ``UNIDATA_*`` environment values applied."""

    environ = os.environ if environ is None else environ
    merged = copy.deepcopy(payload)
    for var_name, (path, caster) in _ENV_OVERRIDES.items():
        raw = environ.get(var_name)
        if raw is None or raw == "":
            continue
        try:
            value = caster(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {var_name}: {raw!r}") from exc
        target = merged
        for key in path[:-1]:
            target = target.setdefault(key, {})
        target[path[-1]] = value
    return merged


def validate_for_startup(settings: EngineSettings) -> list[str]:
    """Return non-fatal warnings; raise for settings that cannot run."""

    warnings: list[str] = []
    if settings.env.lower() in {"prod", "production"} and settings.storage.backend == "memory":
        raise ValueError("A persistent store backend is required in production")
    if settings.ai.enabled and not settings.ai.endpoint:
        warnings.append("AI verification enabled without an endpoint; confidence passes through")
    for message in warnings:
        logger.warning("config_warning", message=message)
    return warnings


@dataclass(slots=True)
class ConfigLocator:
    """Resolve engine paths from the project root or ``UNIDATA_HOME``."""

    project_root: Path | None = None
    data_dir: Path | None = None
    subjects_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        root = home_root(self.project_root)
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.subjects_dir = (self.data_dir / "subjects").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.subjects_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME


class ConfigRepository:
    """Settings and subject definitions stored as YAML files."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._settings_cache: EngineSettings | None = None

    # ------------------------------------------------------------------
    # Engine settings
    # ------------------------------------------------------------------
    def load_settings(self, environ: Mapping[str, str] | None = None) -> EngineSettings:
        if self._settings_cache is not None:
            return self._settings_cache
        path = self.locator.settings_path()
        payload = _read_file(path) if path.exists() else {}
        settings = EngineSettings.model_validate(apply_env_overrides(payload, environ))
        validate_for_startup(settings)
        self._settings_cache = settings
        return settings

    def save_settings(self, settings: EngineSettings) -> None:
        _write_file(self.locator.settings_path(), settings.model_dump(mode="json"))
        self._settings_cache = settings

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------
    def subject_path(self, name: str) -> Path:
        return self.locator.subjects_dir / f"{slugify(name)}{SUBJECT_CONFIG_SUFFIX}"

    def list_subject_files(self) -> Iterable[Path]:
        for path in sorted(self.locator.subjects_dir.glob("*")):
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS:
                yield path

    def list_subjects(self) -> list[SubjectConfig]:
        return [self.load_subject(path) for path in self.list_subject_files()]

    def load_subject(self, identifier: str | Path) -> SubjectConfig:
        path = identifier if isinstance(identifier, Path) else self.subject_path(identifier)
        if not path.exists():
            raise FileNotFoundError(f"Subject configuration not found: {identifier}")
        return SubjectConfig.model_validate(_read_file(path))

    def save_subject(self, config: SubjectConfig) -> Path:
        path = self.subject_path(config.name)
        _write_file(path, config.model_dump(mode="json"))
        return path

    def delete_subject(self, name: str) -> bool:
        path = self.subject_path(name)
        if path.exists():
            path.unlink()
            return True
        return False


__all__ = [
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "apply_env_overrides",
    "home_root",
    "slugify",
    "validate_for_startup",
]
