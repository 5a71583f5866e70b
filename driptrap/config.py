"""Configuration management for driptrap.

A Config is an immutable snapshot. It is built once at startup from three
layers (built-in defaults, then the TOML config file, then command-line
values) and rebuilt from defaults plus the file on every reload. Values that
fail validation are dropped with a warning and the lower layer wins.

Config file keys:
    Port           listening port (1-65535)
    Delay          milliseconds between drip lines (> 0)
    MaxLineLength  upper bound on a drip line, CR LF included (3-255)
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 2222
DEFAULT_DELAY_MS = 10000
DEFAULT_MAX_LINE_LENGTH = 32
DEFAULT_LOG_LEVEL = "INFO"

MIN_LINE_LENGTH = 3
MAX_LINE_LENGTH = 255

FILE_KEYS = {
    "Port": "port",
    "Delay": "delay_ms",
    "MaxLineLength": "max_line_length",
}


class ConfigError(Exception):
    """Raised when a config file cannot be read or parsed."""


@dataclass(frozen=True)
class Config:
    """One immutable configuration snapshot."""

    port: int = DEFAULT_PORT
    delay_ms: int = DEFAULT_DELAY_MS
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    host: str = DEFAULT_HOST
    config_path: Optional[Path] = None
    # Terminal marker: every session must stop once it sees this.
    exit: bool = False

    @property
    def delay(self) -> float:
        """Drip interval in seconds."""
        return self.delay_ms / 1000.0

    def exiting(self) -> "Config":
        """Return the exit-marked copy published during shutdown."""
        return replace(self, exit=True)

    def __str__(self) -> str:
        return "[Port {}] [Delay {}ms] [Max Length {}]".format(
            self.port, self.delay_ms, self.max_line_length
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def valid_port(value: Any) -> bool:
    return _is_int(value) and 0 < value < 65536


def valid_delay(value: Any) -> bool:
    return _is_int(value) and value > 0


def valid_line_length(value: Any) -> bool:
    return _is_int(value) and MIN_LINE_LENGTH <= value <= MAX_LINE_LENGTH


VALIDATORS = {
    "port": valid_port,
    "delay_ms": valid_delay,
    "max_line_length": valid_line_length,
}


def apply_overrides(config: Config, source: str, **values: Any) -> Config:
    """Return a new Config with every valid, non-None value applied.

    Invalid values are logged and ignored, leaving the previous value in
    place.
    """
    accepted: Dict[str, Any] = {}
    for field_name, value in values.items():
        if value is None:
            continue
        check = VALIDATORS.get(field_name)
        if check is None:
            raise TypeError(f"Unknown config field: {field_name}")
        if not check(value):
            LOGGER.warning(
                "Ignoring invalid %s value %r from %s (keeping %r)",
                field_name,
                value,
                source,
                getattr(config, field_name),
            )
            continue
        accepted[field_name] = value
    return replace(config, **accepted) if accepted else config


def read_config_file(path: Path) -> Dict[str, Any]:
    """Read a TOML config file and map its known keys to Config fields.

    Raises:
        ConfigError: if the file is unreadable or not valid TOML.
    """
    try:
        content = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        data = tomllib.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc

    return {field: data[key] for key, field in FILE_KEYS.items() if key in data}


def _apply_file(config: Config, path: Path) -> Config:
    try:
        values = read_config_file(path)
    except ConfigError as exc:
        LOGGER.warning("%s", exc)
        return config
    return apply_overrides(config, str(path), **values)


def load_config(
    config_path: Optional[Path] = None,
    port: Optional[int] = None,
    delay_ms: Optional[int] = None,
    max_line_length: Optional[int] = None,
    host: Optional[str] = None,
) -> Config:
    """Build the startup Config: defaults < config file < command line."""
    config = Config(host=host or DEFAULT_HOST, config_path=config_path)

    if config_path is not None:
        config = _apply_file(config, config_path)
        LOGGER.info("Load config from %s, %s", config_path, config)

    config = apply_overrides(
        config,
        "command line",
        port=port,
        delay_ms=delay_ms,
        max_line_length=max_line_length,
    )
    LOGGER.info("Current config %s", config)
    return config


def reload_config(current: Config) -> Config:
    """Rebuild a Config for a reload request: defaults < config file.

    Command-line values are not re-applied. Host and config path are
    startup-only and carried over from ``current``. If the file cannot be
    read or parsed, ``current`` stays in effect unchanged.
    """
    config = Config(host=current.host, config_path=current.config_path)
    if current.config_path is None:
        LOGGER.info("No config file to reload, falling back to defaults")
        return config

    try:
        values = read_config_file(current.config_path)
    except ConfigError as exc:
        LOGGER.warning("%s, keeping %s", exc, current)
        return replace(current, exit=False)

    config = apply_overrides(config, str(current.config_path), **values)
    LOGGER.info("Reload config from %s, %s", current.config_path, config)
    return config


def get_log_level() -> str:
    """Default log level, overridable via DRIPTRAP_LOG_LEVEL."""
    return os.environ.get("DRIPTRAP_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()


def get_config() -> Config:
    """Return a defaults-only Config."""
    return Config()
