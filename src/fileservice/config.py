"""Configuration loading for the file service.

Settings are layered, later layers winning:

1. Model defaults (port 8080, storage type "minio", bucket "default", log level "info")
2. YAML file, first one found of:
   - explicit path argument
   - FILESERVICE_CONFIG environment variable
   - ./config.yaml
   - ./config/config.yaml
3. Environment variables named FILESERVICE_<SECTION>_<KEY>, nested sections
   joined with "_" (e.g. FILESERVICE_STORAGE_MINIO_ENDPOINT).
   FILESERVICE_AUTH_API_KEYS is a comma separated list.

A missing file is not an error; unreadable or invalid content is.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, get_origin

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "FILESERVICE"
CONFIG_PATH_ENV = "FILESERVICE_CONFIG"
DEFAULT_CONFIG_LOCATIONS = (Path("config.yaml"), Path("config") / "config.yaml")

STORAGE_TYPES = ("minio", "oss", "obs", "azure", "filesystem")


class ConfigError(Exception):
    """Raised when configuration cannot be read or fails validation."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    request_timeout_seconds: float = Field(default=300.0, gt=0)


class MinIOConfig(BaseModel):
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = False


class OSSConfig(BaseModel):
    """Aliyun OSS. ``endpoint`` may be empty when ``region`` is set."""

    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = True
    region: str = ""


class OBSConfig(BaseModel):
    """Huawei Cloud OBS. ``endpoint`` may be empty when ``region`` is set."""

    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = True
    region: str = ""


class AzureConfig(BaseModel):
    """Azure Blob. ``connection_string`` takes precedence over name and key."""

    endpoint: str = ""
    account_name: str = ""
    account_key: str = ""
    connection_string: str = ""


class FilesystemConfig(BaseModel):
    base_dir: str = ""


class StorageConfig(BaseModel):
    type: str = "minio"
    bucket: str = "default"
    minio: MinIOConfig = Field(default_factory=MinIOConfig)
    oss: OSSConfig = Field(default_factory=OSSConfig)
    obs: OBSConfig = Field(default_factory=OBSConfig)
    azure: AzureConfig = Field(default_factory=AzureConfig)
    filesystem: FilesystemConfig = Field(default_factory=FilesystemConfig)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class AuthConfig(BaseModel):
    enabled: bool = False
    api_keys: list[str] = Field(default_factory=list)

    @field_validator("api_keys", mode="before")
    @classmethod
    def _split_keys(cls, v: Any) -> Any:
        # Accepts a list, a "k1,k2" string, or a {key: description} mapping
        if v is None:
            return []
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        if isinstance(v, Mapping):
            return [str(k) for k in v]
        return v


class LogConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: str = "info"
    json_format: bool = Field(default=False, alias="json")


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    log: LogConfig = Field(default_factory=LogConfig)


def _resolve_config_path(
    path: str | Path | None, environ: Mapping[str, str]
) -> Path | None:
    """Return the config file to read, or None to run on defaults."""
    if path is not None:
        explicit = Path(path)
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}", path=str(explicit))
        return explicit

    env_path = environ.get(CONFIG_PATH_ENV, "").strip()
    if env_path:
        from_env = Path(env_path)
        if not from_env.is_file():
            raise ConfigError(
                f"Config file from {CONFIG_PATH_ENV} not found: {from_env}", path=env_path
            )
        return from_env

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(path: Path) -> dict[str, Any]:
    path_str = str(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {e}", path=path_str) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}", path=path_str) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must be a mapping, got {type(data).__name__}", path=path_str
        )
    return data


def _env_name(parts: tuple[str, ...]) -> str:
    return "_".join((ENV_PREFIX, *parts)).upper()


def _apply_env_overrides(
    model: type[BaseModel],
    data: dict[str, Any],
    environ: Mapping[str, str],
    parts: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Overlay FILESERVICE_* variables onto ``data`` following ``model``'s shape."""
    for name, field in model.model_fields.items():
        key = field.alias or name
        annotation = field.annotation
        if (
            get_origin(annotation) is None
            and isinstance(annotation, type)
            and issubclass(annotation, BaseModel)
        ):
            section = data.get(key)
            if not isinstance(section, dict):
                section = {}
            section = _apply_env_overrides(annotation, section, environ, (*parts, key))
            if section:
                data[key] = section
            continue

        value = environ.get(_env_name((*parts, key)))
        if value is not None:
            data[key] = value
    return data


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from file and environment.

    Args:
        path: Explicit config file path. Must exist when given.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Validated AppConfig.

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, or a value
            fails validation.
    """
    if environ is None:
        environ = os.environ

    config_path = _resolve_config_path(path, environ)
    data: dict[str, Any] = _read_yaml(config_path) if config_path is not None else {}
    data = _apply_env_overrides(AppConfig, data, environ)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e}", path=str(config_path) if config_path else None
        ) from e

    if config_path is not None:
        logger.info("Loaded config from %s", config_path)
    else:
        logger.info("No config file found; using defaults and environment")
    return config
