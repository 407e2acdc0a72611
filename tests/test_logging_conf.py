from __future__ import annotations

from pathlib import Path

import pytest

from unidata_engine.config import ConfigLocator
from unidata_engine.logging_conf import (
    ROOT_LOGGER,
    available_subject_logs,
    build_logging_config,
    default_log_dir,
    subject_log_path,
    tail_log,
)


def test_log_dir_matches_locator_under_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("UNIDATA_HOME", str(home))

    locator = ConfigLocator(project_root=tmp_path / "elsewhere")

    assert default_log_dir() == locator.logs_dir == home.resolve() / "logs"
    assert subject_log_path("Example University") == locator.logs_dir / "subjects" / "example-university.log"


def test_log_dir_matches_locator_without_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("UNIDATA_HOME", raising=False)
    monkeypatch.chdir(tmp_path)

    assert default_log_dir() == ConfigLocator().logs_dir == tmp_path.resolve() / "logs"


def test_build_logging_config_routes_by_level(tmp_path: Path) -> None:
    config = build_logging_config(tmp_path, "DEBUG")

    handlers = config["handlers"]
    assert handlers["console"]["level"] == "DEBUG"
    assert handlers["engine_file"]["filename"] == str(tmp_path / "engine.log")
    assert handlers["error_file"]["level"] == "ERROR"
    assert config["loggers"][ROOT_LOGGER]["handlers"] == ["console", "engine_file", "error_file"]
    assert config["loggers"][ROOT_LOGGER]["propagate"] is False


def test_tail_and_subject_logs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UNIDATA_HOME", str(tmp_path))
    assert list(available_subject_logs()) == []
    path = subject_log_path("UBC")
    path.parent.mkdir(parents=True)
    path.write_text("a\nb\nc\n", encoding="utf-8")

    assert tail_log(path, 2) == ["b\n", "c\n"]
    assert tail_log(tmp_path / "missing.log") == []
    assert list(available_subject_logs()) == [path]
