from __future__ import annotations
import time

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helpers the configuration loader and CLI call to decide whether
user-supplied connection settings are usable.
"""

# Mumble usernames: printable, no leading/trailing whitespace, server caps at 128
MAX_USERNAME_LENGTH = 128


def is_valid_port(port: object) -> bool:
    """Port must be an integer between 1 and 65535 (bools rejected)."""
    return isinstance(port, int) and not isinstance(port, bool) and 0 < port <= 65535


def is_valid_host(host: object) -> bool:
    """
    Accepts a hostname, IPv4 or IPv6 literal.

    - must be a non-empty string
    - no whitespace, no scheme ("wss://...") and no embedded port
    """
    if not isinstance(host, str) or not host:
        return False
    if any(c.isspace() for c in host) or "/" in host:
        return False
    # a single colon means host:port, IPv6 literals carry several
    return host.count(":") != 1


def is_valid_username(name: object) -> bool:
    return (
        isinstance(name, str)
        and 0 < len(name) <= MAX_USERNAME_LENGTH
        and name == name.strip()
        and name.isprintable()
    )


def split_hostport(s: str, default_port: int) -> tuple[str, int]:
    """
    Accepts 'hostname', 'hostname:port', '[v6]:port'.

    Examples: "localhost" -> ("localhost", default_port),
              "example.com:64739" -> ("example.com", 64739)
    """
    if s.startswith("["):
        host, _, rest = s[1:].partition("]")
        port_s = rest[1:] if rest.startswith(":") else ""
    elif s.count(":") == 1:
        host, port_s = s.split(":", 1)
    else:
        host, port_s = s, ""
    port = int(port_s) if port_s else default_port
    if not is_valid_host(host) or not is_valid_port(port):
        raise ValueError(f"Invalid server address: {s!r}")
    return host, port


def now_ms() -> int:
    return int(time.time() * 1000)
