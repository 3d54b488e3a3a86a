#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from mumble_client.certs import ClientCertificate, load_certificate, save_certificate
from mumble_client.config import DEFAULT_PORT, SessionOptions, TLSOptions, load_options
from mumble_client.directory import Channel
from mumble_client.session import MumbleSession
from mumble_shared.errors import MumbleError
from mumble_shared.log import configure_root_logging, get_logger
from mumble_shared.utils import split_hostport

app = typer.Typer(help="Mumble session client CLI")
console = Console()
logger = get_logger(__name__)

T = TypeVar("T")


def _default_config() -> Optional[Path]:
    value = os.getenv("MUMBLE_CONFIG")
    return Path(value) if value else None


def _build_options(
    config: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    username: Optional[str],
    insecure: bool,
    cert: Optional[Path],
    timeout: Optional[float],
) -> SessionOptions:
    if host is not None:
        try:
            host, host_port = split_hostport(host, DEFAULT_PORT)
        except ValueError as e:
            raise typer.BadParameter(str(e))
        # an explicit --port wins over the one in host:port
        if port is None and host_port != DEFAULT_PORT:
            port = host_port
    overrides = {"host": host, "port": port, "username": username, "command_timeout": timeout}
    try:
        options = load_options(config, **overrides)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    if insecure:
        options.tls.verify = False
    if cert is not None:
        cert_path = cert.expanduser()
        if load_certificate(cert_path) is None:
            raise typer.BadParameter(f"No certificate at {cert_path.with_suffix('.pem')}")
        options.tls = TLSOptions(
            verify=options.tls.verify,
            ca_file=options.tls.ca_file,
            cert_file=str(cert_path.with_suffix(".pem")),
            key_file=str(cert_path.with_suffix(".key")),
            server_hostname=options.tls.server_hostname,
        )
    return options


def _run(options: SessionOptions, action: Callable[[MumbleSession], Awaitable[T]]) -> T:
    async def main() -> T:
        async with MumbleSession(options) as session:
            return await action(session)

    try:
        return asyncio.run(main())
    except MumbleError as e:
        console.print(f"[red]Error[/]: {e}")
        raise typer.Exit(code=1)


def _channel_tree(session: MumbleSession) -> Tree:
    def label(channel: Channel) -> str:
        return f"[bold]{channel.name or '(root)'}[/] [dim]#{channel.channel_id}[/]"

    def add(node: Tree, channel: Channel) -> None:
        for user in session.users.in_channel(channel.channel_id):
            marker = " (you)" if session.user is not None and user.session == session.user.session else ""
            node.add(f"[cyan]{user.name}[/] [dim]session={user.session}[/]{marker}")
        for child in session.channels.children(channel.channel_id):
            add(node.add(label(child)), child)

    root = session.channels.root
    tree = Tree(label(root) if root is not None else "(no channels)")
    if root is not None:
        add(tree, root)
    return tree


ConfigOpt = typer.Option(_default_config(), "--config", "-c", help="YAML session config")
HostOpt = typer.Option(None, help="Server host or host:port (overrides config / MUMBLE_HOST)")
PortOpt = typer.Option(None, help="Server port (default 64738)")
UserOpt = typer.Option(None, "--username", "-u", help="Username to authenticate as")
InsecureOpt = typer.Option(False, "--insecure", help="Skip server certificate verification")
CertOpt = typer.Option(None, help="Client certificate path stem (<stem>.pem/<stem>.key)")
TimeoutOpt = typer.Option(None, help="Seconds to wait for the server to confirm a command")


@app.callback()
def main_callback(log_level: str = typer.Option("WARNING", help="Root log level")) -> None:
    configure_root_logging(log_level)


@app.command()
def channels(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    username: Optional[str] = UserOpt,
    insecure: bool = InsecureOpt,
    cert: Optional[Path] = CertOpt,
):
    """Connect, print the channel tree with its users, and disconnect."""
    options = _build_options(config, host, port, username, insecure, cert, None)

    async def show(session: MumbleSession) -> None:
        version = session.server_version
        if version is not None:
            console.print(f"Server {version.release or ''} {'.'.join(map(str, version.triple or ()))}")
        console.print(_channel_tree(session))

    _run(options, show)


@app.command()
def users(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    username: Optional[str] = UserOpt,
    insecure: bool = InsecureOpt,
    cert: Optional[Path] = CertOpt,
):
    """List connected users."""
    options = _build_options(config, host, port, username, insecure, cert, None)

    async def show(session: MumbleSession) -> None:
        table = Table(title="Online Users")
        table.add_column("Session", justify="right")
        table.add_column("Name")
        table.add_column("Channel")
        table.add_column("Registered")
        for user in sorted(session.users, key=lambda u: u.session):
            channel = session.channels.by_id(user.channel_id)
            table.add_row(
                str(user.session),
                user.name,
                channel.name if channel else str(user.channel_id),
                "yes" if user.is_registered else "",
            )
        console.print(table)

    _run(options, show)


@app.command("create-channel")
def create_channel(
    parent: int = typer.Argument(..., help="Parent channel id (0 is the root)"),
    name: str = typer.Argument(..., help="New channel name"),
    temporary: bool = typer.Option(False, help="Create a temporary channel"),
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    username: Optional[str] = UserOpt,
    insecure: bool = InsecureOpt,
    cert: Optional[Path] = CertOpt,
    timeout: Optional[float] = TimeoutOpt,
):
    """Create a channel and print its id."""
    options = _build_options(config, host, port, username, insecure, cert, timeout)
    channel = _run(options, lambda s: s.create_channel(parent, name, temporary=temporary))
    console.print(f"[bold green]Created[/] {channel.name} #{channel.channel_id}")


@app.command("remove-channel")
def remove_channel(
    channel_id: int = typer.Argument(..., help="Channel id to remove"),
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    username: Optional[str] = UserOpt,
    insecure: bool = InsecureOpt,
    cert: Optional[Path] = CertOpt,
    timeout: Optional[float] = TimeoutOpt,
):
    """Remove a channel."""
    options = _build_options(config, host, port, username, insecure, cert, timeout)
    _run(options, lambda s: s.remove_channel(channel_id))
    console.print(f"[bold green]Removed[/] channel #{channel_id}")


@app.command()
def move(
    session_id: int = typer.Argument(..., metavar="SESSION", help="Session id of the user to move"),
    channel_id: int = typer.Argument(..., help="Destination channel id"),
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    username: Optional[str] = UserOpt,
    insecure: bool = InsecureOpt,
    cert: Optional[Path] = CertOpt,
    timeout: Optional[float] = TimeoutOpt,
):
    """Move a user to another channel."""
    options = _build_options(config, host, port, username, insecure, cert, timeout)
    user = _run(options, lambda s: s.move_user_to_channel(session_id, channel_id))
    console.print(f"[bold green]Moved[/] {user.name} to #{user.channel_id}")


@app.command("gen-cert")
def gen_cert(
    name: str = typer.Argument(..., help="Common name, usually the username"),
    out: Path = typer.Option(Path.home() / ".mumble" / "client", help="Path stem for <stem>.pem/<stem>.key"),
    force: bool = typer.Option(False, help="Overwrite an existing certificate"),
):
    """Generate a self-signed client certificate."""
    out = out.expanduser()
    existing = load_certificate(out)
    if existing is not None and not force:
        console.print(f"Certificate already exists: {out.with_suffix('.pem')} ({existing.fingerprint})")
        raise typer.Exit(code=1)
    cert = ClientCertificate.generate(name)
    save_certificate(out, cert)
    console.print(f"[bold green]Wrote[/] {out.with_suffix('.pem')} fingerprint {cert.fingerprint}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
