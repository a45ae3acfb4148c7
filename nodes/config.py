"""Configuration for nodes.

The config file lives at ``<app dir>/config`` (override with ``NODES_CONFIG``)
and is TOML::

    [storage]
    default = "notes"
    notes = "~/notes"
    work = "~/work/notes"

    [programs]
    editor = ["nvim", "+set ft=markdown"]

    [sqlite]
    synchronous = "NORMAL"

Without a config file a single storage named ``default`` at ``~/.nodes`` is
used.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Literal, Optional
import logging
import os
import tomllib

import typer
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "nodes"
DB_FILENAME = "nodes.db"

Synchronous = Literal["OFF", "NORMAL", "FULL", "EXTRA"]


class StorageConfig(BaseModel):
    default: str
    storages: dict[str, Path]

    @field_validator("storages")
    @classmethod
    def _expand(cls, v: dict[str, Path]) -> dict[str, Path]:
        return {name: path.expanduser() for name, path in v.items()}

    def folder(self, name: str) -> Optional[Path]:
        return self.storages.get(name)

    def default_folder(self) -> Path:
        return self.storages[self.default]


class Config(BaseModel):
    storage: StorageConfig
    programs: dict[str, list[str]] = Field(default_factory=dict)
    synchronous: Synchronous = "OFF"

    @field_validator("synchronous", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def program(self, name: str) -> Optional[list[str]]:
        return self.programs.get(name)


def config_folder() -> Path:
    return Path(typer.get_app_dir(APP_NAME))


def config_path() -> Path:
    env_path = os.getenv("NODES_CONFIG")
    if env_path:
        return Path(env_path)
    return config_folder() / "config"


def default_storage_path() -> Path:
    return Path.home() / ".nodes"


def default_config() -> Config:
    return Config(
        storage=StorageConfig(default="default", storages={"default": default_storage_path()})
    )


def _parse_storage(value: Any) -> StorageConfig:
    if not isinstance(value, dict):
        raise ConfigError("Invalid storage config: [storage] is not a table")

    default = value.get("default")
    if default is not None and not isinstance(default, str):
        raise ConfigError("Invalid default storage: 'default' must be a string")

    storages = {k: v for k, v in value.items() if k != "default"}
    if not storages:
        raise ConfigError("No storages configured in [storage]")
    if default is None:
        if len(storages) != 1:
            raise ConfigError("Several storages configured but no default storage given")
        # the only storage is the default
        default = next(iter(storages))

    try:
        storage = StorageConfig(default=default, storages=storages)
    except ValidationError as e:
        raise ConfigError(f"Invalid storage config: {e}") from e

    if storage.folder(default) is None:
        raise ConfigError(f"Invalid default storage: '{default}' is not configured")
    return storage


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from a parsed TOML document."""
    if "storage" not in data:
        raise ConfigError("Config file has no [storage] table")
    storage = _parse_storage(data["storage"])

    programs = data.get("programs", {})
    sqlite = data.get("sqlite", {})
    if not isinstance(sqlite, dict):
        raise ConfigError("Invalid sqlite config: [sqlite] is not a table")
    try:
        return Config(
            storage=storage,
            programs=programs,
            synchronous=sqlite.get("synchronous", "OFF"),
        )
    except ValidationError as e:
        fields = {str(err["loc"][0]) for err in e.errors()}
        if "programs" in fields:
            raise ConfigError("Invalid programs: expected name = [\"argv\", ...]") from e
        raise ConfigError(f"Invalid config: {e}") from e


def load_config(path: Optional[Path] = None) -> Config:
    """Load the config file, or the default config when there is none.

    Only fails (with ConfigError) when the file exists but is invalid.
    """
    path = path or config_path()
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.debug("No config file at %s, using default config", path)
        return default_config()
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(f"Could not parse config file {path}: {e}") from e

    logger.debug("Loaded config from %s", path)
    return parse_config(data)
