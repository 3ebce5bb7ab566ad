"""
Settings for Airdrop Watch.

Every knob (upstream endpoint, cache windows, the status zone and phase
shift, fingerprint policy, server and logging) lives in one pydantic tree.
`load_settings` reads `settings.yaml`, applies `AIRDROP_WATCH_<SECTION>__<FIELD>`
environment overrides and validates the result, so a bad time zone or a
non-positive timeout stops the process at startup with a `ConfigError`.
"""
import os
import json
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

ENV_PREFIX = "AIRDROP_WATCH"

# --- Custom Exceptions ---

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

# --- Pydantic Models for Configuration Sections ---

DEFAULT_UPSTREAM_URL = "https://alpha123.uk/api/data?t=1751632712002&fresh=1"

DEFAULT_UPSTREAM_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "accept-language": "zh-CN,zh;q=0.9,en;q=0.8",
    "cache-control": "no-cache",
    "pragma": "no-cache",
    "referer": "https://alpha123.uk/",
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}

class UpstreamSettings(BaseModel):
    """Where and how the airdrop feed is fetched."""
    url: str = DEFAULT_UPSTREAM_URL
    headers: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_UPSTREAM_HEADERS))
    timeout_sec: float = Field(30.0, gt=0)

class CacheSettings(BaseModel):
    """Freshness window for on-demand reads and the background cadence."""
    freshness_min: float = Field(5.0, gt=0)
    refresh_interval_min: float = Field(10.0, gt=0)

class StatusSettings(BaseModel):
    """Status resolution rules.

    `timezone` is the single zone every date comparison is made in.
    `undated_status` is assigned to events without a usable date; when left
    null those events keep the upstream-asserted status.
    """
    timezone: str = "Asia/Shanghai"
    shift_phase: int = 2
    shift_hours: float = 18.0
    undated_status: Optional[Literal["announced", "completed"]] = None

    @field_validator("timezone")
    def timezone_must_exist(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise PydanticCustomError(
                "timezone_invalid",
                "Unknown time zone '{timezone}'",
                {"timezone": v},
            )
        return v

class FingerprintSettings(BaseModel):
    """Change detection policy.

    refresh: the stored fingerprint always follows the latest fetch.
    sticky:  a detected change keeps the old fingerprint, so the change is
             reported again until the feed returns to the stored state.
    """
    policy: Literal["refresh", "sticky"] = "refresh"

class ServerSettings(BaseModel):
    """HTTP server binding."""
    host: str = "0.0.0.0"
    port: int = Field(3000, gt=0, lt=65536)
    static_dir: Optional[str] = "public"

class LoggingSettings(BaseModel):
    """Settings for logging configuration."""
    level: str = Field("INFO", description="The logging level, e.g., DEBUG, INFO, WARNING.")

class Settings(BaseModel):
    """The root Pydantic model for the entire configuration."""
    upstream: UpstreamSettings = UpstreamSettings()
    cache: CacheSettings = CacheSettings()
    status: StatusSettings = StatusSettings()
    fingerprint: FingerprintSettings = FingerprintSettings()
    server: ServerSettings = ServerSettings()
    logging: LoggingSettings = LoggingSettings()

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e

# Settings whose values are taken verbatim from the environment
_VERBATIM_KEYS = {"headers", "url"}
_JSON_LITERALS = {"true", "false", "null"}


def _coerce_env_value(value: str) -> Any:
    """Turn an env string into a YAML-equivalent scalar, list or mapping."""
    lowered = value.lower()
    if lowered in _JSON_LITERALS:
        return json.loads(lowered)
    looks_structured = value[:1] + value[-1:] in ("[]", "{}")
    if looks_structured or value.replace(".", "", 1).isdigit():
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _get_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Collect `AIRDROP_WATCH_<SECTION>__<FIELD>` variables into a nested dict.

    `AIRDROP_WATCH_CACHE__FRESHNESS_MIN=2` becomes `{'cache': {'freshness_min': 2}}`.
    Upstream URLs and header values are never decoded.
    """
    overrides: Dict[str, Any] = {}
    for key, raw in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        path = key[len(prefix) + 1:].lower().split("__")
        value = raw if _VERBATIM_KEYS.intersection(path) else _coerce_env_value(raw)
        section = overrides
        for part in path[:-1]:
            section = section.setdefault(part, {})
        section[path[-1]] = value
    return overrides


def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Layer `overrides` onto `base` section by section; leaf values replace."""
    for key, value in overrides.items():
        current = base.get(key)
        base[key] = _merge_configs(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return base


def _describe_validation_error(e: ValidationError) -> str:
    lines = [f"Invalid airdrop-watch settings ({e.error_count()} problem(s)):"]
    for err in e.errors():
        where = ".".join(str(p) for p in err["loc"]) or "<root>"
        lines.append(f"  {where}: {err['msg']}")
    return "\n".join(lines)


# --- Public API ---

def load_settings(path: Optional[str] = "settings.yaml") -> Settings:
    """
    Build the validated `Settings` for the watcher.

    The YAML file at `path` is the base layer (pass None to start from the
    model defaults). `AIRDROP_WATCH_*` environment variables are layered on
    top, then the whole tree is validated.

    Raises:
        ConfigError: missing or unparseable file, a non-mapping document,
                     or any field that fails validation.
    """
    if path is None:
        logger.info("Loading airdrop-watch settings from defaults and environment")
        base: Dict[str, Any] = {}
    else:
        logger.info(f"Loading airdrop-watch settings from '{path}'")
        base = _load_config_from_yaml(Path(path)) or {}
        if not isinstance(base, dict):
            raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")

    merged = _merge_configs(base, _get_env_overrides())
    try:
        settings = Settings.model_validate(merged)
    except ValidationError as e:
        logger.error(_describe_validation_error(e))
        raise ConfigError("Failed to validate settings.") from e
    logger.success(f"Settings ready (upstream={settings.upstream.url}, tz={settings.status.timezone})")
    return settings
