from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import os
import yaml


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(slots=True)
class GiveawaySettings:
    channel_id: Optional[int] = None
    join_emoji: str = "🎉"
    winning_cooldown_days: int = 30
    retention_days: int = 30
    daemon_interval_seconds: int = 5


@dataclass(slots=True)
class PermissionsConfig:
    admin_roles: List[int] = field(default_factory=list)
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    data_dir: Path
    logging: LoggingConfig
    giveaways: GiveawaySettings
    permissions: PermissionsConfig


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]

def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value

def _parse_non_negative(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"giveaways.{key} must be a non-negative integer.")
    return value


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO"))
    return LoggingConfig(level=level)


def _parse_giveaways(data: Dict[str, Any]) -> GiveawaySettings:
    channel_id_raw = data.get("channel_id")
    channel_id: Optional[int] = None
    if channel_id_raw not in (None, ""):
        try:
            channel_id = int(channel_id_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "giveaways.channel_id must be an integer channel ID or null."
            ) from exc
        if channel_id <= 0:
            raise ConfigError("giveaways.channel_id must be a positive integer.")

    join_emoji = str(data.get("join_emoji", "🎉")).strip()
    if not join_emoji:
        raise ConfigError("giveaways.join_emoji must not be empty.")

    interval = _parse_non_negative(data, "daemon_interval_seconds", 5)
    if interval == 0:
        raise ConfigError("giveaways.daemon_interval_seconds must be greater than zero.")

    return GiveawaySettings(
        channel_id=channel_id,
        join_emoji=join_emoji,
        winning_cooldown_days=_parse_non_negative(data, "winning_cooldown_days", 30),
        retention_days=_parse_non_negative(data, "retention_days", 30),
        daemon_interval_seconds=interval,
    )


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    admin_roles_raw = data.get("admin_roles", [])
    if not isinstance(admin_roles_raw, list):
        raise ConfigError("permissions.admin_roles must be a list of role IDs.")
    admin_roles: List[int] = []
    for role_id in admin_roles_raw:
        try:
            admin_roles.append(int(role_id))
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"permissions.admin_roles contains invalid role id: {role_id!r}"
            ) from exc
    dev_guild_raw = data.get("development_guild_id")
    development_guild_id: Optional[int]
    if dev_guild_raw in (None, "", 0):
        development_guild_id = None
    else:
        try:
            development_guild_id = int(dev_guild_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "permissions.development_guild_id must be an integer guild ID or null."
            ) from exc
        if development_guild_id <= 0:
            raise ConfigError(
                "permissions.development_guild_id must be a positive integer."
            )
    return PermissionsConfig(
        admin_roles=admin_roles, development_guild_id=development_guild_id
    )


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_require(data, "application_id"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("application_id must be an integer.") from exc
    data_dir = Path(str(data.get("data_dir", "data")))

    return Config(
        token=token,
        application_id=application_id,
        data_dir=data_dir,
        logging=_parse_logging(data.get("logging") or {}),
        giveaways=_parse_giveaways(data.get("giveaways") or {}),
        permissions=_parse_permissions(data.get("permissions") or {}),
    )
