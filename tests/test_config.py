"""Tests for intellirack.config: URL and token resolution."""

from __future__ import annotations

import json
import stat

import pytest

from intellirack.config import (
    DEFAULT_API_BASE,
    get_api_base,
    get_token,
    load_config,
    save_config,
    server_url,
)


@pytest.fixture(autouse=True)
def _home(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    for var in ("INTELLIRACK_API_URL", "EXPO_PUBLIC_API_URL", "INTELLIRACK_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


class TestConfigFile:
    def test_missing_file_is_empty(self):
        assert load_config() == {}

    def test_round_trip_and_permissions(self, tmp_path):
        save_config({"api_url": "http://rack-server:5000/api"})
        path = tmp_path / ".intellirack" / "config.json"
        assert json.loads(path.read_text()) == {"api_url": "http://rack-server:5000/api"}
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert load_config()["api_url"] == "http://rack-server:5000/api"

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / ".intellirack" / "config.json"
        path.parent.mkdir()
        path.write_text("{not json")
        assert load_config() == {}

    def test_non_object_ignored(self, tmp_path):
        path = tmp_path / ".intellirack" / "config.json"
        path.parent.mkdir()
        path.write_text("[1, 2]")
        assert load_config() == {}


class TestApiBase:
    def test_default(self):
        assert get_api_base() == DEFAULT_API_BASE

    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("INTELLIRACK_API_URL", "http://env/api")
        assert get_api_base("http://arg/api/") == "http://arg/api"

    def test_env_order(self, monkeypatch):
        monkeypatch.setenv("EXPO_PUBLIC_API_URL", "http://expo/api")
        assert get_api_base() == "http://expo/api"
        monkeypatch.setenv("INTELLIRACK_API_URL", "http://rack/api")
        assert get_api_base() == "http://rack/api"

    def test_config_file_used_last(self):
        save_config({"api_url": "http://file/api/"})
        assert get_api_base() == "http://file/api"

    @pytest.mark.parametrize(
        "api_base,expected",
        [
            ("http://h:5000/api", "http://h:5000"),
            ("http://h:5000/api/", "http://h:5000"),
            ("http://h:5000", "http://h:5000"),
            ("http://api.example.com/v1", "http://api.example.com/v1"),
        ],
    )
    def test_server_url(self, api_base, expected):
        assert server_url(api_base) == expected


class TestToken:
    def test_explicit(self, monkeypatch):
        monkeypatch.setenv("INTELLIRACK_TOKEN", "env")
        assert get_token("arg") == "arg"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("INTELLIRACK_TOKEN", "env")
        assert get_token() == "env"

    def test_missing(self):
        assert get_token() == ""
