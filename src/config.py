# Copyright (c) 2025 Stephen Clau

# This file is part of Hydration Bot.

# Hydration Bot is dual-licensed:

# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms

# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com

# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""
Configuration module for Hydration Bot.

- Discord token is REQUIRED (env var or Docker secret)
- Optional bot.yml in CONFIG_DIR supplies non-secret defaults
- .env in the working directory is loaded before anything is read
- Docker secrets support: reads from /run/secrets/* and env vars
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List
import os
import yaml
import structlog
from dotenv import load_dotenv

try:
    from .bot.errors import ConfigurationError
    from .bot.reminder_scheduler import (
        DEFAULT_REMINDER_TEMPLATE,
        DEFAULT_SEND_TIMEOUT,
        DEFAULT_THRESHOLD,
        DEFAULT_TICK_INTERVAL,
    )
except ImportError:
    from bot.errors import ConfigurationError  # type: ignore
    from bot.reminder_scheduler import (  # type: ignore
        DEFAULT_REMINDER_TEMPLATE,
        DEFAULT_SEND_TIMEOUT,
        DEFAULT_THRESHOLD,
        DEFAULT_TICK_INTERVAL,
    )

logger = structlog.get_logger()

PRESENCE_SOURCES = ("voice", "guild")


def _read_docker_secret(secret_name: str) -> Optional[str]:
    """
    Read a secret from Docker secrets location.

    Docker Swarm/Kubernetes mounts secrets at /run/secrets/{secret_name}.

    Args:
        secret_name: Name of the secret (e.g., 'discord_token')

    Returns:
        Secret value or None if not found
    """
    secret_path = Path(f"/run/secrets/{secret_name}")

    if secret_path.exists():
        try:
            return secret_path.read_text().strip()
        except (IOError, OSError) as e:
            logger.warning("docker_secret_read_error", secret=secret_name, error=str(e))
            return None

    return None


def get_config_value(
    env_var: str,
    secret_name: Optional[str] = None,
    required: bool = False,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get configuration value from Docker secrets or environment variables.

    Tries in order:
    1. Docker secret file at /run/secrets/{secret_name}
    2. Environment variable {env_var}
    3. Default value if provided
    4. Raise error if required and not found

    Example usage:
        token = get_config_value(
            env_var="DISCORD_TOKEN",
            secret_name="discord_token",
            required=True,
        )

    Args:
        env_var: Environment variable name (e.g., 'DISCORD_TOKEN')
        secret_name: Docker secret name. If not provided, uses env_var lowercased
        required: If True, raises ConfigurationError when value not found
        default: Default value if not found in env or secrets

    Returns:
        Configuration value from secret, env var, or default

    Raises:
        ConfigurationError: If required=True and value not found
    """
    if secret_name is None:
        secret_name = env_var.lower()

    secret_value = _read_docker_secret(secret_name)
    if secret_value is not None:
        logger.debug("config_value_loaded_from_secret", source="docker_secret", var=env_var)
        return secret_value

    env_value = os.getenv(env_var)
    if env_value is not None:
        logger.debug("config_value_loaded_from_env", source="environment", var=env_var)
        return env_value

    if default is not None:
        logger.debug("config_value_loaded_from_default", source="default", var=env_var)
        return default

    if required:
        raise ConfigurationError(
            f"Required configuration value not found for '{env_var}'. "
            f"Checked: Docker secret '{secret_name}', environment variable '{env_var}'"
        )

    return None


def _safe_int(value: Any, field_name: str, default: int) -> int:
    """
    Safely convert value to int with proper type checking.

    Raises:
        ConfigurationError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ConfigurationError(f"Cannot convert {field_name} to int: bool")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise ConfigurationError(f"Invalid integer for {field_name}: {value}")

    raise ConfigurationError(f"Cannot convert {field_name} to int: {type(value).__name__}")


def _safe_float(value: Any, field_name: str, default: float) -> float:
    """
    Safely convert value to float with proper type checking.

    Raises:
        ConfigurationError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ConfigurationError(f"Cannot convert {field_name} to float: bool")

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ConfigurationError(f"Invalid float for {field_name}: {value}")

    raise ConfigurationError(f"Cannot convert {field_name} to float: {type(value).__name__}")


def _parse_owner_ids(value: Any) -> List[int]:
    """Parse owner IDs from a comma-separated string or a YAML list."""
    if value is None or value == "":
        return []

    if isinstance(value, (list, tuple)):
        items = list(value)
    else:
        items = [part for part in str(value).split(",") if part.strip()]

    return [_safe_int(item, "owner_ids", 0) for item in items]


def looks_like_token(token: str) -> bool:
    """Cheap shape check: Discord bot tokens are three dot-separated segments."""
    parts = token.split(".")
    return len(parts) == 3 and all(parts) and not any(c.isspace() for c in token)


@dataclass
class Config:
    """Main application configuration."""

    discord_token: str
    """Discord bot token (required)."""

    client_id: Optional[str] = None
    """Application client ID. When set, the bot authorization URL is logged at startup."""

    owner_ids: List[int] = field(default_factory=list)
    """Users allowed to run quit. Empty means: resolve from the application owner."""

    command_prefix: str = "!"
    """Text command prefix. Default: !"""

    presence_source: str = "voice"
    """Presence trigger: 'voice' (voice channel join/leave) or 'guild' (member join/leave)."""

    reminder_threshold: float = DEFAULT_THRESHOLD
    """Seconds between reminders for one user. Default: 1800 (30 min)"""

    reminder_tick_interval: float = DEFAULT_TICK_INTERVAL
    """Seconds between reminder sweeps. Default: 1"""

    reminder_send_timeout: float = DEFAULT_SEND_TIMEOUT
    """Upper bound in seconds for delivering one reminder. Default: 10"""

    reminder_message: str = DEFAULT_REMINDER_TEMPLATE
    """Reminder text sent (read aloud) to opted-in users."""

    health_check_host: str = "0.0.0.0"
    """Host to bind health check server to. Default: 0.0.0.0"""

    health_check_port: int = 8080
    """Port to bind health check server to. Default: 8080"""

    log_level: str = "info"
    """Logging level: debug, info, warning, error. Default: info"""

    log_format: str = "console"
    """Logging format: console or json. Default: console"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.discord_token:
            raise ConfigurationError("discord_token is REQUIRED")

        if not looks_like_token(self.discord_token):
            raise ConfigurationError("Token Invalid")

        if not self.command_prefix or self.command_prefix.isspace():
            raise ConfigurationError("command_prefix cannot be empty")

        if self.presence_source.lower() not in PRESENCE_SOURCES:
            raise ConfigurationError(
                f"Invalid presence_source '{self.presence_source}'. "
                f"Must be one of: {', '.join(PRESENCE_SOURCES)}"
            )
        self.presence_source = self.presence_source.lower()

        if self.reminder_threshold <= 0:
            raise ConfigurationError(
                f"reminder_threshold must be > 0, got {self.reminder_threshold}"
            )

        if self.reminder_tick_interval <= 0:
            raise ConfigurationError(
                f"reminder_tick_interval must be > 0, got {self.reminder_tick_interval}"
            )

        if self.reminder_send_timeout <= 0:
            raise ConfigurationError(
                f"reminder_send_timeout must be > 0, got {self.reminder_send_timeout}"
            )

        if not self.reminder_message.strip():
            raise ConfigurationError("reminder_message cannot be empty")

        valid_levels = {"debug", "info", "warning", "error"}
        if self.log_level.lower() not in valid_levels:
            raise ConfigurationError(
                f"Invalid log_level '{self.log_level}'. Must be one of: {', '.join(sorted(valid_levels))}"
            )

        if not 1 <= self.health_check_port <= 65535:
            raise ConfigurationError(
                f"Invalid health_check_port: {self.health_check_port}. Must be 1-65535"
            )

        valid_formats = {"console", "json"}
        if self.log_format.lower() not in valid_formats:
            raise ConfigurationError(
                f"Invalid log_format '{self.log_format}'. Must be one of: {', '.join(sorted(valid_formats))}"
            )


def _load_yaml_defaults(config_dir: Path) -> Dict[str, Any]:
    """
    Load optional bot.yml from the config directory.

    Returns:
        Mapping of YAML keys to values (empty if the file is absent)

    Raises:
        ConfigurationError: If the file exists but is not a mapping
    """
    path = config_dir / "bot.yml"
    if not path.exists():
        logger.debug("bot_yml_not_found", path=str(path))
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")

    logger.info("bot_yml_loaded", path=str(path), keys=sorted(data.keys()))
    return data


def load_config() -> Config:
    """
    Load configuration from .env, environment variables and bot.yml.

    Priority order for each config value:
    1. Docker secret (token only) or environment variable
    2. bot.yml YAML file in CONFIG_DIR
    3. Hardcoded defaults

    Returns:
        Fully populated Config object with validation

    Raises:
        ConfigurationError: If required values are missing or invalid
    """
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "."))
    yml = _load_yaml_defaults(config_dir)

    def _value(env_var: str, key: str, default: Any = None) -> Any:
        env_value = get_config_value(env_var=env_var)
        if env_value is not None:
            return env_value
        return yml.get(key, default)

    discord_token = get_config_value(
        env_var="DISCORD_TOKEN",
        secret_name="discord_token",
        required=True,
    )

    client_id = _value("CLIENT_ID", "client_id")

    config = Config(
        discord_token=discord_token or "",
        client_id=str(client_id) if client_id else None,
        owner_ids=_parse_owner_ids(_value("OWNER_IDS", "owner_ids")),
        command_prefix=str(_value("COMMAND_PREFIX", "command_prefix", "!")),
        presence_source=str(_value("PRESENCE_SOURCE", "presence_source", "voice")),
        reminder_threshold=_safe_float(
            _value("REMINDER_THRESHOLD_SECONDS", "reminder_threshold_seconds"),
            "reminder_threshold_seconds",
            DEFAULT_THRESHOLD,
        ),
        reminder_tick_interval=_safe_float(
            _value("REMINDER_TICK_SECONDS", "reminder_tick_seconds"),
            "reminder_tick_seconds",
            DEFAULT_TICK_INTERVAL,
        ),
        reminder_send_timeout=_safe_float(
            _value("REMINDER_SEND_TIMEOUT_SECONDS", "reminder_send_timeout_seconds"),
            "reminder_send_timeout_seconds",
            DEFAULT_SEND_TIMEOUT,
        ),
        reminder_message=str(_value("REMINDER_MESSAGE", "reminder_message", DEFAULT_REMINDER_TEMPLATE)),
        health_check_host=str(_value("HEALTH_CHECK_HOST", "health_check_host", "0.0.0.0")),
        health_check_port=_safe_int(
            _value("HEALTH_CHECK_PORT", "health_check_port"),
            "health_check_port",
            8080,
        ),
        log_level=str(_value("LOG_LEVEL", "log_level", "info")),
        log_format=str(_value("LOG_FORMAT", "log_format", "console")),
    )

    return config
