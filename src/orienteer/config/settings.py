# src/orienteer/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/orienteer/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `ORIENTEER_API_BASE_URL`, `ORIENTEER_CHECKIN_RADIUS_M`)
- an external YAML file via `ORIENTEER_CONFIG_PATH`

Design rule:
- Tuning knobs (check-in radius, sampling interval, movement threshold) live in YAML,
  not hard-coded in the engine.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from orienteer.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `orienteer.config`."""
    text = resources.files("orienteer.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Orienteer"
    timezone: str = "UTC"
    log_level: str = "INFO"


class ApiSettings(BaseModel):
    base_url: str = "https://orienteering-game.fly.dev"
    timeout_seconds: float = Field(15, gt=0)
    token: str | None = None
    user_agent: str = "orienteer/0.1.0"


class CheckInSettings(BaseModel):
    radius_m: float = Field(30.0, gt=0)


class LocationSettings(BaseModel):
    min_interval_ms: int = Field(5000, ge=0)
    min_distance_m: float = Field(5.0, ge=0)


class CatalogSettings(BaseModel):
    path: str = "data/catalogs/hunts.json"


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(8000, ge=1, le=65535)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    checkin: CheckInSettings = Field(default_factory=CheckInSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("ORIENTEER_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    base_url = os.getenv("ORIENTEER_API_BASE_URL")
    if base_url:
        data.setdefault("api", {})["base_url"] = base_url

    token = os.getenv("ORIENTEER_API_TOKEN")
    if token:
        data.setdefault("api", {})["token"] = token

    radius = os.getenv("ORIENTEER_CHECKIN_RADIUS_M")
    if radius:
        data.setdefault("checkin", {})["radius_m"] = float(radius)

    catalog_path = os.getenv("ORIENTEER_CATALOG_PATH")
    if catalog_path:
        data.setdefault("catalog", {})["path"] = catalog_path

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("ORIENTEER_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
