"""Tests for srpsession.config: XDG paths, atomic writes, profiles, precedence."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from srpsession.config import (
    atomic_write,
    delete_profile,
    get_config_dir,
    get_data_dir,
    get_profiles_dir,
    get_sessions_dir,
    list_profiles,
    load_global_config,
    load_profile,
    load_project_config,
    profile_exists,
    resolve_config,
    resolve_credential,
    save_global_config,
    save_profile,
)
from srpsession.exceptions import ConfigError
from srpsession.models import ErrorMapping, GlobalConfig, OutputConfig, Profile, TransportConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _make_profile(name: str = "test", base_url: str = "https://api.example.com") -> Profile:
    return Profile(name=name, username="alice", transport=TransportConfig(base_url=base_url))


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        result = get_config_dir()
        assert result == tmp_path / ".config" / "srpsession"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "custom"))

        assert get_config_dir() == tmp_path / "custom" / "srpsession"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        assert get_data_dir() == tmp_path / ".local" / "share" / "srpsession"


class TestXDGPathsFallback:
    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        assert get_config_dir() == tmp_path / ".srpsession"

    def test_data_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        assert get_data_dir() == tmp_path / ".srpsession" / "data"


class TestSubdirectories:
    def test_profiles_dir_is_inside_config_dir(self, isolated_config: Path) -> None:
        assert get_profiles_dir() == get_config_dir() / "profiles"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_sessions_dir_is_owner_only(self, isolated_config: Path) -> None:
        path = get_sessions_dir()
        assert path == get_data_dir() / "sessions"
        assert stat.S_IMODE(path.stat().st_mode) & 0o077 == 0


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        atomic_write(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "out.json"
        atomic_write(target, "x")
        assert target.read_text() == "x"

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        with patch("srpsession.config.os.replace", side_effect=OSError("boom")):
            with pytest.raises(OSError):
                atomic_write(target, "data")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_mode_applied(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        cfg = load_global_config()
        assert cfg.default_profile is None
        assert cfg.auto_select_single_profile is True

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_profile="work", output=OutputConfig(format="json")))
        cfg = load_global_config()
        assert cfg.default_profile == "work"
        assert cfg.output.format == "json"

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{broken")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def test_list_empty(self, isolated_config: Path) -> None:
        assert list_profiles() == []

    def test_save_and_list(self, isolated_config: Path) -> None:
        save_profile(_make_profile("beta"))
        save_profile(_make_profile("alpha"))
        assert list_profiles() == ["alpha", "beta"]

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        profile = Profile(
            name="work",
            username="alice",
            password_source="env:WORK_PW",
            totp_source="prompt",
            transport=TransportConfig(base_url="https://api.example.com", timeout=10),
            errors=ErrorMapping(human_verification_codes={9001, 12087}),
        )
        save_profile(profile)

        loaded = load_profile("work")
        assert loaded == profile
        assert loaded.errors.human_verification_codes == {9001, 12087}

    def test_unknown_keys_preserved(self, isolated_config: Path) -> None:
        _write_json(get_profiles_dir() / "work.json", {"name": "work", "team": "infra"})
        assert load_profile("work").model_extra == {"team": "infra"}

    def test_load_nonexistent_raises_config_error(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_profile("missing")

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        (get_profiles_dir() / "bad.json").write_text("{oops")
        with pytest.raises(ConfigError, match="Invalid profile"):
            load_profile("bad")

    def test_delete_profile(self, isolated_config: Path) -> None:
        save_profile(_make_profile("work"))
        delete_profile("work")
        assert not profile_exists("work")

    def test_delete_nonexistent_raises_config_error(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError):
            delete_profile("missing")

    @pytest.mark.parametrize("name", ["", "../evil", ".hidden", "a/b"])
    def test_invalid_names_rejected(self, isolated_config: Path, name: str) -> None:
        with pytest.raises(ConfigError, match="Invalid profile name"):
            profile_exists(name)


class TestProjectConfig:
    def test_load_returns_none_when_missing(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_load_valid_project_config(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "srpsession.json", {"default_profile": "work"})
        assert load_project_config() == {"default_profile": "work"}

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        (isolated_config / "srpsession.json").write_text("nope")
        with pytest.raises(ConfigError):
            load_project_config()


# ---------------------------------------------------------------------------
# Precedence resolution
# ---------------------------------------------------------------------------


class TestResolveConfig:
    """The full precedence chain: CLI > env > project > global > single-profile."""

    def test_defaults_no_profile(self, isolated_config: Path) -> None:
        cfg, profile = resolve_config()
        assert isinstance(cfg, GlobalConfig)
        assert profile is None

    def test_global_default_profile(self, isolated_config: Path) -> None:
        save_profile(_make_profile("global-api"))
        save_profile(_make_profile("other"))
        save_global_config(GlobalConfig(default_profile="global-api"))

        _, profile = resolve_config()
        assert profile is not None
        assert profile.name == "global-api"

    def test_project_overrides_global(self, isolated_config: Path) -> None:
        save_profile(_make_profile("global-api"))
        save_profile(_make_profile("project-api"))
        save_global_config(GlobalConfig(default_profile="global-api"))
        _write_json(isolated_config / "srpsession.json", {"default_profile": "project-api"})

        _, profile = resolve_config()
        assert profile.name == "project-api"

    def test_env_overrides_project(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("project-api"))
        save_profile(_make_profile("env-api"))
        _write_json(isolated_config / "srpsession.json", {"default_profile": "project-api"})
        monkeypatch.setenv("SRPSESSION_PROFILE", "env-api")

        _, profile = resolve_config()
        assert profile.name == "env-api"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_profile(_make_profile("env-api"))
        save_profile(_make_profile("cli-api"))
        monkeypatch.setenv("SRPSESSION_PROFILE", "env-api")

        _, profile = resolve_config(cli_profile="cli-api")
        assert profile.name == "cli-api"

    def test_cli_base_url_overrides_profile(self, isolated_config: Path) -> None:
        save_profile(_make_profile("api"))

        _, profile = resolve_config(cli_base_url="https://override.example.com")
        assert profile.transport.base_url == "https://override.example.com"

    def test_env_base_url_overrides_profile(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_profile(_make_profile("api"))
        monkeypatch.setenv("SRPSESSION_BASE_URL", "https://env.example.com")

        _, profile = resolve_config()
        assert profile.transport.base_url == "https://env.example.com"

    def test_cli_base_url_beats_env_base_url(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_profile(_make_profile("api"))
        monkeypatch.setenv("SRPSESSION_BASE_URL", "https://env.example.com")

        _, profile = resolve_config(cli_base_url="https://cli.example.com")
        assert profile.transport.base_url == "https://cli.example.com"

    def test_cli_format_overrides_global(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(output=OutputConfig(format="plain")))
        cfg, _ = resolve_config(cli_format="json")
        assert cfg.output.format == "json"

    def test_auto_select_disabled(self, isolated_config: Path) -> None:
        save_profile(_make_profile("only-one"))
        save_global_config(GlobalConfig(auto_select_single_profile=False))

        _, profile = resolve_config()
        assert profile is None

    def test_auto_select_skipped_when_multiple(self, isolated_config: Path) -> None:
        save_profile(_make_profile("alpha"))
        save_profile(_make_profile("beta"))

        _, profile = resolve_config()
        assert profile is None


# ---------------------------------------------------------------------------
# Secret resolution
# ---------------------------------------------------------------------------


class TestResolveCredential:
    def test_env_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_PW", "s3cret")
        assert resolve_credential("env:MY_PW") == "s3cret"

    def test_env_source_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MY_PW", raising=False)
        with pytest.raises(ConfigError, match="MY_PW"):
            resolve_credential("env:MY_PW")

    def test_file_source(self, tmp_path: Path) -> None:
        secret = tmp_path / "pw.txt"
        secret.write_text("from-file\n")
        assert resolve_credential(f"file:{secret}") == "from-file"

    def test_file_source_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_credential(f"file:{tmp_path / 'nope'}")

    def test_prompt_requires_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("srpsession.config.sys.stdin", _FakeStdin(tty=False))
        with pytest.raises(ConfigError, match="TTY"):
            resolve_credential("prompt")

    def test_prompt_uses_getpass(self, monkeypatch: pytest.MonkeyPatch) -> None:
        prompts: list[str] = []
        monkeypatch.setattr("srpsession.config.sys.stdin", _FakeStdin(tty=True))
        monkeypatch.setattr(
            "srpsession.config.getpass.getpass", lambda prompt: prompts.append(prompt) or "typed"
        )

        assert resolve_credential("prompt", prompt="Code: ") == "typed"
        assert prompts == ["Code: "]

    def test_unknown_format_raises(self) -> None:
        with pytest.raises(ConfigError, match="Unknown secret source"):
            resolve_credential("vault:whatever")


class _FakeStdin:
    def __init__(self, tty: bool) -> None:
        self._tty = tty

    def isatty(self) -> bool:
        return self._tty
