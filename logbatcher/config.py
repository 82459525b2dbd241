"""Configuration module — frozen dataclass loaded from environment variables.

An optional YAML file named by ``CONFIG_PATH`` provides base values keyed by
field name; environment variables take precedence over it.
"""

import os
import logging
from dataclasses import dataclass, fields

import yaml

from logbatcher.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FAILURE_POLICIES = ("requeue", "drop", "terminate")


@dataclass(frozen=True)
class Config:
    post_endpoint: str = ""
    trusted_proxy: str = "localhost"
    max_retries: int = 3
    retry_wait: int = 2
    check_frequency: int = 10
    batch_interval: int = 10
    batch_size: int = 20
    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout: int = 10
    failure_policy: str = "requeue"
    log_level: str = "INFO"

    @property
    def trusted_proxies(self) -> list[str]:
        return [p.strip() for p in self.trusted_proxy.split(",") if p.strip()]


# env var name -> (field name, minimum allowed value for ints)
_INT_VARS = {
    "MAX_RETRIES": ("max_retries", 1),
    "RETRY_WAIT": ("retry_wait", 0),
    "CHECK_FREQUENCY": ("check_frequency", 1),
    "BATCH_INTERVAL": ("batch_interval", 1),
    "BATCH_SIZE": ("batch_size", 1),
    "PORT": ("port", 0),
    "REQUEST_TIMEOUT": ("request_timeout", 1),
}

_STR_VARS = {
    "TRUSTED_PROXY": "trusted_proxy",
    "HOST": "host",
    "FAILURE_POLICY": "failure_policy",
    "LOG_LEVEL": "log_level",
}


def _load_yaml(path: str) -> dict:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file {path} does not exist")
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in {path}: {', '.join(sorted(unknown))}")
    return data


def _require(environ, name: str, base: dict, field_name: str) -> str:
    """Read a required variable, falling back to the file value then the default."""
    value = environ.get(name, "")
    if value:
        return value
    if base.get(field_name) not in (None, ""):
        return str(base[field_name])

    default = getattr(Config, field_name)
    if default in (None, ""):
        raise ConfigError(f"{name} is not set, and no default value is available")
    logger.info("%s is not set, using default value %s", name, default)
    return str(default)


def _require_int(environ, name: str, base: dict, field_name: str, minimum: int) -> int:
    raw = _require(environ, name, base, field_name)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} is not a valid integer: {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    return value


def load_config(environ=None) -> Config:
    """Build Config from the environment (and CONFIG_PATH, when set).

    Raises:
        ConfigError: a required value is missing or malformed.
    """
    if environ is None:
        environ = os.environ

    config_path = environ.get("CONFIG_PATH")
    base = _load_yaml(config_path) if config_path else {}

    kwargs: dict = {
        "post_endpoint": _require(environ, "POST_ENDPOINT", base, "post_endpoint"),
    }
    for name, field_name in _STR_VARS.items():
        kwargs[field_name] = _require(environ, name, base, field_name)
    for name, (field_name, minimum) in _INT_VARS.items():
        kwargs[field_name] = _require_int(environ, name, base, field_name, minimum)

    kwargs["failure_policy"] = kwargs["failure_policy"].strip().lower()
    if kwargs["failure_policy"] not in FAILURE_POLICIES:
        raise ConfigError(
            f"FAILURE_POLICY must be one of {', '.join(FAILURE_POLICIES)}, "
            f"got {kwargs['failure_policy']!r}"
        )

    kwargs["log_level"] = kwargs["log_level"].strip().upper()
    if kwargs["log_level"] not in LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    return Config(**kwargs)
