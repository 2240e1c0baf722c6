"""JSON config loading shared by the recipient parser and the mail sender."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from .errors import ConfigError

VERSION = "2.1.0"

DEFAULT_SEPARATOR = ","
DEFAULT_TIMEOUT = 30
CONFIG_ENV = "RECIPKIT_CONFIG"
PASSWORD_ENV = "RECIPKIT_PASS"

# JSON keys that differ from the attribute names.
KEY_ALIASES = {"pass": "password", "verify": "verify_tls"}


@dataclass(frozen=True)
class Config:
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    sep: str = DEFAULT_SEPARATOR

    # Directory search base, recipient parser only.
    base: str = ""
    # From address, mail sender only.
    sender: str = ""

    timeout: float = DEFAULT_TIMEOUT
    verify_tls: bool = False

    def require(self, *names: str) -> None:
        """Raise ConfigError when any of the named fields is empty."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Config is missing required field(s): {', '.join(missing)}")


def default_config_path() -> Optional[str]:
    """Return the config path from the environment, if any."""
    return (os.environ.get(CONFIG_ENV) or "").strip() or None


def parse_config(data: dict) -> Config:
    """Build a Config from a decoded JSON object.

    Args:
        data: Mapping decoded from the config file.

    Returns:
        Config with defaults applied for absent keys.

    Raises:
        ConfigError: When a value has the wrong type.
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be a JSON object")

    known = {f.name for f in fields(Config)}
    values = {}
    for key, value in data.items():
        name = KEY_ALIASES.get(key, key)
        if name in known:
            values[name] = value

    try:
        if "port" in values:
            values["port"] = int(values["port"] or 0)
        if "timeout" in values:
            values["timeout"] = float(values["timeout"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric value in config: {exc}") from exc

    for name in ("host", "user", "password", "base", "sender", "sep"):
        if name in values:
            values[name] = str(values[name] or "")
    if "verify_tls" in values:
        values["verify_tls"] = bool(values["verify_tls"])

    if not values.get("sep"):
        values["sep"] = DEFAULT_SEPARATOR
    if not values.get("password"):
        values["password"] = os.environ.get(PASSWORD_ENV, "")

    return Config(**values)


def load_config(path: str | os.PathLike | None) -> Config:
    """Read and parse a JSON config file."""
    if not path:
        raise ConfigError(f"No config file given (use --config or set {CONFIG_ENV})")

    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Malformed config {config_path}: {exc}") from exc

    return parse_config(data)
