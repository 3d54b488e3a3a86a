import ssl

import pytest

from mumble_client.config import DEFAULT_PORT, SessionOptions, TLSOptions, load_options
from mumble_shared.utils import is_valid_host, is_valid_username, split_hostport


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MUMBLE_HOST", "MUMBLE_PORT", "MUMBLE_USERNAME"):
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, text):
    path = tmp_path / "session.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_from_yaml(tmp_path):
    path = write_config(
        tmp_path,
        """
host: voice.example.com
username: bot
ping_interval_ms: 2500
tokens: [alpha, beta]
client_version: [1, 4, 0]
tls:
  verify: false
  server_hostname: mumble.internal
""",
    )

    options = load_options(path)

    assert options.host == "voice.example.com"
    assert options.port == DEFAULT_PORT
    assert options.ping_interval == 2.5
    assert options.tokens == ["alpha", "beta"]
    assert options.client_version == (1, 4, 0)
    assert isinstance(options.tls, TLSOptions)
    assert options.tls.verify is False
    assert options.tls.server_hostname == "mumble.internal"
    assert options.command_timeout is None


def test_precedence_yaml_env_overrides(tmp_path, monkeypatch):
    path = write_config(tmp_path, "host: from-yaml\nusername: yaml-user\nport: 1000\n")
    monkeypatch.setenv("MUMBLE_HOST", "from-env")
    monkeypatch.setenv("MUMBLE_PORT", "2000")

    options = load_options(path, port=3000, username=None)

    assert options.host == "from-env"
    assert options.port == 3000
    assert options.username == "yaml-user"


def test_unknown_keys_are_dropped(tmp_path):
    path = write_config(tmp_path, "host: h\nusername: u\nvolume: 11\n")
    assert load_options(path).host == "h"


@pytest.mark.parametrize(
    "overrides",
    [
        {"username": "bot"},
        {"host": "h"},
        {"host": "h:64738", "username": "bot"},
        {"host": "h", "username": "bot", "port": 70000},
        {"host": "h", "username": " bot"},
        {"host": "h", "username": "bot", "ping_interval": 0},
        {"host": "h", "username": "bot", "command_timeout": -1},
    ],
)
def test_invalid_options_raise(overrides):
    with pytest.raises(ValueError):
        load_options(**overrides)


def test_bad_env_port(monkeypatch):
    monkeypatch.setenv("MUMBLE_PORT", "not-a-port")
    with pytest.raises(ValueError):
        load_options(host="h", username="bot")


def test_missing_config_file(tmp_path):
    with pytest.raises(ValueError):
        load_options(tmp_path / "absent.yaml", host="h", username="bot")


def test_insecure_ssl_context():
    ctx = TLSOptions(verify=False).build_ssl_context()

    assert ctx.check_hostname is False
    assert ctx.verify_mode == ssl.CERT_NONE


def test_default_ssl_context_verifies():
    ctx = SessionOptions(host="h", username="bot").tls.build_ssl_context()

    assert ctx.check_hostname is True
    assert ctx.verify_mode == ssl.CERT_REQUIRED


def test_address_helpers():
    assert split_hostport("example.com", 64738) == ("example.com", 64738)
    assert split_hostport("example.com:64739", 64738) == ("example.com", 64739)
    assert split_hostport("[::1]:5000", 64738) == ("::1", 5000)
    assert is_valid_host("::1")
    assert not is_valid_host("wss://example.com")
    assert not is_valid_username("x" * 129)
    with pytest.raises(ValueError):
        split_hostport("example.com:0", 64738)


def test_cli_host_accepts_host_and_port():
    import typer

    from mumble_client.cli import _build_options

    options = _build_options(None, "example.com:64739", None, "bot", False, None, None)
    assert (options.host, options.port) == ("example.com", 64739)

    options = _build_options(None, "[::1]:5000", 6000, "bot", False, None, None)
    assert (options.host, options.port) == ("::1", 6000)

    options = _build_options(None, "example.com", None, "bot", True, None, 2.5)
    assert (options.host, options.port) == ("example.com", DEFAULT_PORT)
    assert options.tls.verify is False
    assert options.command_timeout == 2.5

    with pytest.raises(typer.BadParameter):
        _build_options(None, "example.com:0", None, "bot", False, None, None)
