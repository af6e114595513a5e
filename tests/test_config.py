"""Tests for layered configuration loading.

Tests cover:
A) Defaults when no file is found
B) YAML file discovery and parsing
C) FILESERVICE_* environment overrides
D) Invalid files and values raise ConfigError
"""

from __future__ import annotations

from pathlib import Path

import pytest

from fileservice.config import AppConfig, ConfigError, load_config

FULL_CONFIG = """
server:
  host: 127.0.0.1
  port: 9090
  request_timeout_seconds: 30
storage:
  type: OSS
  bucket: media
  oss:
    region: cn-hangzhou
    access_key: ak
    secret_key: sk
auth:
  enabled: true
  api_keys:
    - key-one
    - key-two
log:
  level: debug
  json: true
"""


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test in an empty directory so ./config.yaml is never picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Test A: defaults."""

    def test_no_file_uses_defaults(self) -> None:
        config = load_config(environ={})

        assert config == AppConfig()
        assert config.server.port == 8080
        assert config.storage.type == "minio"
        assert config.storage.bucket == "default"
        assert config.auth.enabled is False
        assert config.log.level == "info"
        assert config.log.json_format is False


class TestFile:
    """Test B: YAML files."""

    def test_explicit_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "svc.yaml", FULL_CONFIG)

        config = load_config(path, environ={})

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9090
        assert config.server.request_timeout_seconds == 30
        assert config.storage.type == "oss"
        assert config.storage.bucket == "media"
        assert config.storage.oss.region == "cn-hangzhou"
        assert config.storage.oss.use_ssl is True
        assert config.auth.api_keys == ["key-one", "key-two"]
        assert config.log.level == "debug"
        assert config.log.json_format is True

    def test_path_from_environment(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "elsewhere" / "svc.yaml", "server:\n  port: 7000\n")

        config = load_config(environ={"FILESERVICE_CONFIG": str(path)})

        assert config.server.port == 7000

    def test_default_locations(self, isolated_cwd: Path) -> None:
        """./config/config.yaml is used when ./config.yaml is absent."""
        _write(isolated_cwd / "config" / "config.yaml", "storage:\n  bucket: nested\n")

        assert load_config(environ={}).storage.bucket == "nested"

    def test_root_config_preferred(self, isolated_cwd: Path) -> None:
        _write(isolated_cwd / "config.yaml", "storage:\n  bucket: root\n")
        _write(isolated_cwd / "config" / "config.yaml", "storage:\n  bucket: nested\n")

        assert load_config(environ={}).storage.bucket == "root"

    def test_empty_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "empty.yaml", "")

        assert load_config(path, environ={}) == AppConfig()

    def test_api_keys_as_mapping(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "svc.yaml",
            "auth:\n  enabled: true\n  api_keys:\n    key-a: ci\n    key-b: ops\n",
        )

        assert load_config(path, environ={}).auth.api_keys == ["key-a", "key-b"]


class TestEnvironment:
    """Test C: environment overrides."""

    def test_env_wins_over_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "svc.yaml", FULL_CONFIG)
        environ = {
            "FILESERVICE_SERVER_PORT": "9999",
            "FILESERVICE_STORAGE_BUCKET": "from-env",
            "FILESERVICE_STORAGE_OSS_ACCESS_KEY": "env-ak",
        }

        config = load_config(path, environ=environ)

        assert config.server.port == 9999
        assert config.storage.bucket == "from-env"
        assert config.storage.oss.access_key == "env-ak"
        assert config.storage.oss.secret_key == "sk"

    def test_env_only(self) -> None:
        environ = {
            "FILESERVICE_STORAGE_TYPE": "azure",
            "FILESERVICE_STORAGE_AZURE_CONNECTION_STRING": "UseDevelopmentStorage=true",
            "FILESERVICE_AUTH_ENABLED": "true",
            "FILESERVICE_AUTH_API_KEYS": "k1, k2,,",
            "FILESERVICE_LOG_JSON": "1",
            "FILESERVICE_STORAGE_MINIO_USE_SSL": "false",
        }

        config = load_config(environ=environ)

        assert config.storage.type == "azure"
        assert config.storage.azure.connection_string == "UseDevelopmentStorage=true"
        assert config.auth.enabled is True
        assert config.auth.api_keys == ["k1", "k2"]
        assert config.log.json_format is True
        assert config.storage.minio.use_ssl is False

    def test_unrelated_variables_ignored(self) -> None:
        config = load_config(environ={"FILESERVICE_UNKNOWN": "x", "HOME": "/root"})

        assert config == AppConfig()


class TestErrors:
    """Test D: failures."""

    def test_explicit_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_env_path_missing(self, tmp_path: Path) -> None:
        environ = {"FILESERVICE_CONFIG": str(tmp_path / "missing.yaml")}

        with pytest.raises(ConfigError, match="FILESERVICE_CONFIG"):
            load_config(environ=environ)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yaml", "server: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML") as exc_info:
            load_config(path, environ={})

        assert exc_info.value.path == str(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "list.yaml", "- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path, environ={})

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "svc.yaml", "server:\n  port: 70000\n")

        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path, environ={})

    def test_invalid_env_value(self) -> None:
        with pytest.raises(ConfigError):
            load_config(environ={"FILESERVICE_SERVER_PORT": "eighty"})
