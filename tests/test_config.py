from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from devbuddy_mcp.config import DevBuddySettings, get_settings, load_user_settings


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEVBUDDY_WORKSPACE", str(tmp_path / "repo"))
    monkeypatch.setenv("DEVBUDDY_STORAGE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("DEVBUDDY_STORAGE_MODE", " Global ")
    monkeypatch.setenv("DEVBUDDY_LOG_LEVEL", "debug")
    monkeypatch.setenv("DEVBUDDY_GIT_TIMEOUT", "5")

    settings = DevBuddySettings()

    assert settings.storage_mode == "global"
    assert settings.log_level == "DEBUG"
    assert settings.git_timeout == 5.0
    assert settings.global_store_path == tmp_path / "state" / "global.json"
    store_path = settings.workspace_store_path()
    assert store_path.parent == tmp_path / "state" / "workspaces"
    assert store_path.name.startswith("repo-")


@pytest.mark.parametrize(
    "name, value",
    [
        ("DEVBUDDY_STORAGE_MODE", "cloud"),
        ("DEVBUDDY_LOG_LEVEL", "chatty"),
        ("DEVBUDDY_GIT_TIMEOUT", "0"),
    ],
)
def test_settings_reject_invalid_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        DevBuddySettings()


def test_get_settings_resolves_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEVBUDDY_WORKSPACE", str(tmp_path / "repo" / ".." / "repo"))
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.workspace_path == (tmp_path / "repo").resolve()
        assert settings.storage_dir.is_absolute()
    finally:
        get_settings.cache_clear()


def test_user_settings_loaded_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        textwrap.dedent(
            """
            multiRepo:
              enabled: true
              autoDiscover: false
              parentDir: /src
            repositories:
              backend:
                path: /src/backend
                ticketPrefixes: [BE]
            """
        ).strip(),
        encoding="utf-8",
    )

    settings = load_user_settings(path)

    assert settings.multi_repo.enabled is True
    assert settings.multi_repo.auto_discover is False
    assert settings.multi_repo.parent_dir == "/src"
    assert settings.repositories["backend"]["ticketPrefixes"] == ["BE"]


def test_user_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    missing = load_user_settings(tmp_path / "missing.yaml")
    assert missing.multi_repo.enabled is False
    assert missing.repositories == {}

    broken = tmp_path / "broken.yaml"
    broken.write_text("multiRepo: [unclosed", encoding="utf-8")
    assert load_user_settings(broken).repositories == {}

    wrong_shape = tmp_path / "wrong.yaml"
    wrong_shape.write_text("multiRepo: 3\n", encoding="utf-8")
    assert load_user_settings(wrong_shape).multi_repo.auto_discover is True

    assert load_user_settings(None).repositories == {}


def test_undecodable_user_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_bytes(b"multiRepo:\n  enabled: true\nrepositories:\n  \xff: {}\n")

    settings = load_user_settings(path)

    assert settings.multi_repo.enabled is False
    assert settings.repositories == {}
