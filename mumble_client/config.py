"""
Session configuration.

Options come from (lowest to highest precedence) dataclass defaults, an
optional YAML file, ``MUMBLE_*`` environment variables, then explicit
keyword overrides:

    host: voice.example.com
    port: 64738
    username: bot
    ping_interval_ms: 5000
    tls:
      verify: false
      cert_file: ~/.mumble/bot.pem
      key_file: ~/.mumble/bot.key
"""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from mumble_shared.log import get_logger
from mumble_shared.utils import is_valid_host, is_valid_port, is_valid_username

logger = get_logger(__name__)

DEFAULT_PORT = 64738
DEFAULT_PING_INTERVAL = 5.0
DEFAULT_RELEASE = "simple mumble bot"
DEFAULT_CLIENT_VERSION: Tuple[int, int, int] = (1, 2, 16)


@dataclass
class TLSOptions:
    verify: bool = True
    ca_file: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    server_hostname: Optional[str] = None

    def build_ssl_context(self) -> ssl.SSLContext:
        """Client-side TLS context; presents the client certificate when configured."""
        ctx = ssl.create_default_context(cafile=_expand(self.ca_file))
        if not self.verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        if self.cert_file:
            ctx.load_cert_chain(_expand(self.cert_file), keyfile=_expand(self.key_file))
        return ctx


@dataclass
class SessionOptions:
    host: str
    username: str
    port: int = DEFAULT_PORT
    tls: TLSOptions = field(default_factory=TLSOptions)
    ping_interval: float = DEFAULT_PING_INTERVAL
    release: str = DEFAULT_RELEASE
    client_version: Tuple[int, int, int] = DEFAULT_CLIENT_VERSION
    password: Optional[str] = None
    tokens: List[str] = field(default_factory=list)
    command_timeout: Optional[float] = None
    handshake_timeout: Optional[float] = None

    def validate(self) -> "SessionOptions":
        if not is_valid_host(self.host):
            raise ValueError(f"Invalid host: {self.host!r}")
        if not is_valid_port(self.port):
            raise ValueError(f"Invalid port: {self.port!r}")
        if not is_valid_username(self.username):
            raise ValueError(f"Invalid username: {self.username!r}")
        if self.ping_interval <= 0:
            raise ValueError("ping_interval must be positive")
        for name in ("command_timeout", "handshake_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive or None")
        return self


def load_options(path: Optional[Path] = None, **overrides: Any) -> SessionOptions:
    """Build validated SessionOptions from YAML, environment and overrides."""
    data: Dict[str, Any] = {}
    if path is not None:
        data.update(_load_yaml(Path(path).expanduser()))
    data.update(_env_overrides())
    data.update({k: v for k, v in overrides.items() if v is not None})

    if "ping_interval_ms" in data:
        data["ping_interval"] = float(data.pop("ping_interval_ms")) / 1000.0

    tls = data.pop("tls", None)
    if isinstance(tls, dict):
        data["tls"] = TLSOptions(**_known_keys(TLSOptions, tls, "tls"))
    elif isinstance(tls, TLSOptions):
        data["tls"] = tls
    elif tls is not None:
        raise ValueError("'tls' must be a mapping")

    if "client_version" in data:
        data["client_version"] = tuple(data["client_version"])

    for key in ("host", "username"):
        if key not in data:
            raise ValueError(f"Missing required option: {key}")

    options = SessionOptions(**_known_keys(SessionOptions, data, "session"))
    return options.validate()


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ValueError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.debug("Loaded session config from %s", path)
    return data


def _env_overrides() -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    if os.getenv("MUMBLE_HOST"):
        result["host"] = os.environ["MUMBLE_HOST"]
    if os.getenv("MUMBLE_PORT"):
        try:
            result["port"] = int(os.environ["MUMBLE_PORT"])
        except ValueError:
            raise ValueError(f"MUMBLE_PORT must be an integer, got {os.environ['MUMBLE_PORT']!r}")
    if os.getenv("MUMBLE_USERNAME"):
        result["username"] = os.environ["MUMBLE_USERNAME"]
    return result


def _known_keys(cls: type, data: Dict[str, Any], section: str) -> Dict[str, Any]:
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown %s options: %s", section, sorted(unknown))
    return {k: v for k, v in data.items() if k in known}


def _expand(path: Optional[str]) -> Optional[str]:
    return str(Path(path).expanduser()) if path else None
