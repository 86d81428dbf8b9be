"""
Settings loader for the gatekeeper.

Settings come from a JSON document (``config.json`` unless ``GATEKEEPER_CONFIG``
points elsewhere). A default document is written the first time the gatekeeper
runs so the operator has something to edit.
"""

import json
import os
from dataclasses import dataclass, field

from errors import ConfigError

CONFIG_PATH = os.getenv("GATEKEEPER_CONFIG", "config.json")

DEFAULT_CONFIG = {
    "proxyAddress": ":3390",
    "redirectAddress": "127.0.0.1:3389",
    "apiAddress": ":8080",
    "loggerPath": "gatekeeper.log",
    "defaultApiUrl": "http://localhost:8080/api",
    "allowlistPath": "whitelist.json",
    "apiWhitelist": [],
    "emails": [],
    "smtp": {
        "host": "localhost",
        "port": 587,
        "username": "",
        "password": "",
        "sender": "Gatekeeper <gatekeeper@localhost>",
    },
}


@dataclass(frozen=True)
class SmtpSettings:
    host: str = "localhost"
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = "Gatekeeper <gatekeeper@localhost>"


@dataclass(frozen=True)
class Settings:
    proxy_address: tuple
    redirect_address: tuple
    api_address: tuple
    logger_path: str
    default_api_url: str
    allowlist_path: str = "whitelist.json"
    api_whitelist: tuple = ()
    emails: tuple = ()
    smtp: SmtpSettings = field(default_factory=SmtpSettings)


def parse_address(text, key="address"):
    """Split ``host:port`` (or ``[v6]:port``) into a ``(host, port)`` tuple."""
    if not isinstance(text, str) or ":" not in text:
        raise ConfigError(f"{key} must be a 'host:port' string, got {text!r}")
    host, _, port = text.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port)
    except ValueError:
        raise ConfigError(f"{key} has an invalid port: {text!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"{key} port out of range: {text!r}")
    return host, port


def _require(data, key, kind):
    if key not in data:
        raise ConfigError(f"missing field {key!r}")
    value = data[key]
    if not isinstance(value, kind):
        raise ConfigError(f"field {key!r} must be of type {kind.__name__}")
    return value


def _string_list(data, key):
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"field {key!r} must be a list of strings")
    return tuple(value)


def _smtp(data):
    raw = data.get("smtp", {})
    if not isinstance(raw, dict):
        raise ConfigError("field 'smtp' must be an object")
    defaults = SmtpSettings()
    port = raw.get("port", defaults.port)
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigError("field 'smtp.port' must be an integer")
    values = {}
    for key in ("host", "username", "password", "sender"):
        value = raw.get(key, getattr(defaults, key))
        if not isinstance(value, str):
            raise ConfigError(f"field 'smtp.{key}' must be a string")
        values[key] = value
    return SmtpSettings(port=port, **values)


def settings_from_dict(data):
    """Validate a decoded settings document and build a :class:`Settings`."""
    if not isinstance(data, dict):
        raise ConfigError("settings document must be a JSON object")
    allowlist_path = data.get("allowlistPath", "whitelist.json")
    if not isinstance(allowlist_path, str):
        raise ConfigError("field 'allowlistPath' must be a string")
    return Settings(
        proxy_address=parse_address(
            _require(data, "proxyAddress", str), "proxyAddress"
        ),
        redirect_address=parse_address(
            _require(data, "redirectAddress", str), "redirectAddress"
        ),
        api_address=parse_address(_require(data, "apiAddress", str), "apiAddress"),
        logger_path=_require(data, "loggerPath", str),
        default_api_url=_require(data, "defaultApiUrl", str).rstrip("/"),
        allowlist_path=allowlist_path,
        api_whitelist=_string_list(data, "apiWhitelist"),
        emails=_string_list(data, "emails"),
        smtp=_smtp(data),
    )


def load_settings(path=CONFIG_PATH):
    """Load settings from *path*, writing the default document if it is absent."""
    if not os.path.exists(path):
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(DEFAULT_CONFIG, f, indent=2)
        except OSError as exc:
            raise ConfigError(f"cannot write default settings to {path}: {exc}") from exc

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc

    return settings_from_dict(data)
