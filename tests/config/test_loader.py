from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from unidata_engine.config import (
    AIConfig,
    ConfigLocator,
    ConfigRepository,
    EngineSettings,
    ScheduleConfig,
    ScheduleType,
    StorageConfig,
    SubjectConfig,
    apply_env_overrides,
    slugify,
    validate_for_startup,
)


def test_config_locator_uses_env_and_creates_directories(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("UNIDATA_HOME", str(tmp_path))
    locator = ConfigLocator()

    assert locator.project_root == tmp_path.resolve()
    assert locator.subjects_dir == (tmp_path / "data" / "subjects").resolve()
    assert locator.settings_path() == (tmp_path / "data" / "engine.yaml").resolve()
    for path in (locator.data_dir, locator.subjects_dir, locator.logs_dir):
        assert path.exists()


def test_settings_roundtrip_and_cache(temp_config_repository: ConfigRepository) -> None:
    settings = EngineSettings(env="staging", ai=AIConfig(enabled=False))
    temp_config_repository.save_settings(settings)

    fresh = ConfigRepository(temp_config_repository.locator)
    loaded = fresh.load_settings(environ={})

    assert loaded == settings
    assert fresh.load_settings(environ={"UNIDATA_ENV": "other"}) is loaded


def test_settings_file_merged_with_env(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.settings_path()
    path.write_text(
        yaml.safe_dump({"rate_limit": {"request_delay": 2.5}, "ai": {"enabled": False}}),
        encoding="utf-8",
    )

    settings = temp_config_repository.load_settings(
        environ={"UNIDATA_SUBJECT_DELAY": "4", "UNIDATA_STORE": "MEMORY"}
    )

    assert settings.rate_limit.request_delay == 2.5
    assert settings.rate_limit.subject_delay == 4.0
    assert settings.storage.backend == "memory"


def test_env_overrides_cast_values() -> None:
    merged = apply_env_overrides(
        {"fetch": {"timeout": 10}},
        environ={
            "UNIDATA_USER_AGENTS": "agent-a, agent-b,,",
            "UNIDATA_AI_ENABLED": "false",
            "UNIDATA_MAX_RETRIES": "5",
            "UNIDATA_LOG_LEVEL": "debug",
            "UNIDATA_JOB_TIMEOUT": "",
        },
    )

    assert merged["fetch"] == {"timeout": 10, "user_agents": ["agent-a", "agent-b"]}
    assert merged["ai"]["enabled"] is False
    assert merged["rate_limit"]["max_retries"] == 5
    assert merged["logging"]["level"] == "DEBUG"
    assert "job" not in merged


def test_env_override_rejects_bad_numbers() -> None:
    with pytest.raises(ValueError, match="UNIDATA_REQUEST_DELAY"):
        apply_env_overrides({}, environ={"UNIDATA_REQUEST_DELAY": "soon"})


def test_startup_validation() -> None:
    with pytest.raises(ValueError):
        validate_for_startup(
            EngineSettings(env="production", storage=StorageConfig(backend="memory"))
        )
    warnings = validate_for_startup(EngineSettings(ai=AIConfig(enabled=True)))
    assert len(warnings) == 1
    assert validate_for_startup(EngineSettings(ai=AIConfig(enabled=False))) == []


def test_subject_cycle(temp_config_repository: ConfigRepository) -> None:
    subject = SubjectConfig(
        name="University of Toronto",
        country="Canada",
        locations=["https://www.utoronto.ca/programs"],
        schedule=ScheduleConfig(type=ScheduleType.CRON, value="0 3 * * 1"),
    )

    path = temp_config_repository.save_subject(subject)

    assert path.name == "university-of-toronto.yaml"
    assert temp_config_repository.load_subject("University of Toronto") == subject
    assert temp_config_repository.list_subjects() == [subject]
    assert temp_config_repository.delete_subject("University of Toronto") is True
    assert temp_config_repository.delete_subject("University of Toronto") is False
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_subject("University of Toronto")


def test_slugify() -> None:
    assert slugify("King's College London") == "king-s-college-london"
    assert slugify("  UBC ") == "ubc"
