"""
Main entry point for the Adit command-line interface.
"""

import asyncio
import sys
from functools import partial
from typing import Any, Dict, Optional

import typer
from loguru import logger

from .core.domain.events import Event, TunnelEvent
from .core.domain.models import ConnectionState
from .core.exceptions import AditError, ConfigurationError
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import ApplicationConfig
from .infrastructure.logging.setup import setup_logging
from .infrastructure.transport.asyncssh_transport import AsyncSSHTransport
from .infrastructure.transport.streams import AsyncioNetwork
from .tunnel.adit import Adit, parse_connection_string

# Create CLI application
cli = typer.Typer(
    name="adit",
    help="SSH tunnels: forward local ports through an SSH host, or pull remote ports back"
)

FORWARD_HELP = "Forward spec '<from_port>:<to_host>:<to_port>'"
TARGET_HELP = "SSH target '[ssh://][user@]host[:port]'"


def load_config(config_file: Optional[str], log_level: Optional[str]) -> ApplicationConfig:
    """Load the configuration and set up logging from it."""
    config = ConfigLoader().load_config(config_file)
    if log_level:
        config.logging.level = log_level.upper()
    setup_logging(config.logging)
    return config


def tunnel_settings(
    config: ApplicationConfig,
    forward: Optional[str],
    target: Optional[str],
    password: Optional[str],
    retries: Optional[int]
) -> Dict[str, Any]:
    """
    Settings for ``Adit`` from the command line, falling back to the
    configuration file for everything the command line leaves out.
    """
    if forward and target:
        settings = parse_connection_string(f"{forward} {target}", password)
        settings['agent'] = config.ssh.agent
        settings['key'] = config.ssh.key
        settings['retries'] = config.ssh.retries
        settings['retry_delay'] = config.ssh.retry_delay
    elif forward or target:
        raise ConfigurationError("Give both the forward spec and the SSH target, or neither")
    else:
        settings = config.to_tunnel_settings()
        if password:
            settings['password'] = password

    if retries is not None:
        settings['retries'] = retries

    return settings


def build_tunnel(config: ApplicationConfig, settings: Dict[str, Any]) -> Adit:
    ssh = config.ssh
    transport_factory = partial(
        AsyncSSHTransport,
        known_hosts=ssh.known_hosts_path,
        keepalive_interval=ssh.keepalive_interval,
        connect_timeout=ssh.connect_timeout
    )
    return Adit(
        settings,
        transport_factory=transport_factory,
        network=AsyncioNetwork(connect_timeout=ssh.connect_timeout)
    )


async def run_tunnel(tunnel: Adit, reverse: bool = False) -> ConnectionState:
    """
    Run a tunnel until its connection closes or runs out of retries.

    Forwarding sessions are set up again after every reconnect.

    Returns:
        The terminal connection state
    """
    loop = asyncio.get_running_loop()
    finished: "asyncio.Future[ConnectionState]" = loop.create_future()
    established = False

    def start_sessions() -> "asyncio.Future[None]":
        if reverse:
            return tunnel.in_(tunnel.to, tunnel.from_)
        return tunnel.out(tunnel.from_, tunnel.to)

    async def restart_sessions() -> None:
        tunnel.stop_sessions()
        try:
            await start_sessions()
        except AditError as e:
            logger.error(f"Could not restore forwarding after reconnect: {e}")

    def on_state(event: Event) -> None:
        state = event.data
        if state is ConnectionState.READY and established:
            loop.create_task(restart_sessions())
        elif state.is_terminal and not finished.done():
            finished.set_result(state)

    tunnel.on(TunnelEvent.STATE, on_state)

    try:
        await (tunnel.reverse() if reverse else tunnel.forward())
        established = True
        return await finished
    finally:
        tunnel.close()


def _run(
    reverse: Optional[bool],
    forward: Optional[str],
    target: Optional[str],
    password: Optional[str],
    retries: Optional[int],
    config_file: Optional[str],
    log_level: Optional[str]
) -> None:
    try:
        config = load_config(config_file, log_level)
        tunnel = build_tunnel(config, tunnel_settings(config, forward, target, password, retries))
    except (AditError, ValueError, FileNotFoundError) as e:
        typer.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if reverse is None:
        reverse = config.forwarding.mode == "in"

    logger.info(f"Starting {tunnel!r}")

    try:
        state = asyncio.run(run_tunnel(tunnel, reverse))
    except KeyboardInterrupt:
        logger.info("Tunnel interrupted by user")
        return
    except AditError as e:
        logger.error(f"Tunnel failed: {e}")
        sys.exit(1)

    if state is ConnectionState.FAILED:
        sys.exit(1)


@cli.command()
def forward(
    forward_spec: Optional[str] = typer.Argument(None, help=FORWARD_HELP),
    target: Optional[str] = typer.Argument(None, help=TARGET_HELP),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="SSH password"
    ),
    retries: Optional[int] = typer.Option(
        None, "--retries", "-r", min=0, help="Reconnect attempts after errors"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    )
) -> None:
    """Listen on a local port and forward connections to a host behind SSH."""
    _run(False, forward_spec, target, password, retries, config_file, log_level)


@cli.command()
def reverse(
    forward_spec: Optional[str] = typer.Argument(None, help=FORWARD_HELP),
    target: Optional[str] = typer.Argument(None, help=TARGET_HELP),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="SSH password"
    ),
    retries: Optional[int] = typer.Option(
        None, "--retries", "-r", min=0, help="Reconnect attempts after errors"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    )
) -> None:
    """Have the SSH host listen on a port and deliver connections to a local port."""
    _run(True, forward_spec, target, password, retries, config_file, log_level)


@cli.command()
def start(
    config_file: str = typer.Argument(..., help="Configuration file path"),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="SSH password"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    )
) -> None:
    """Run the tunnel described by a configuration file, in its forwarding mode."""
    _run(None, None, None, password, None, config_file, log_level)


@cli.command()
def init_config(
    output: str = typer.Option(
        "adit.yaml", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "yaml", "--format", "-f", help="Configuration format (yaml/json)"
    )
) -> None:
    """Generate a default configuration file."""

    config = ApplicationConfig()
    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config, output, format)
        typer.echo(f"Default configuration saved to {output}")
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(..., help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
    except (ValueError, FileNotFoundError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)

    ssh, forwarding = config.ssh, config.forwarding
    typer.echo(f"Configuration file {config_file} is valid")
    typer.echo(f"SSH: {ssh.username or '-'}@{ssh.host or '-'}:{ssh.port} ({ssh.retries} retries)")
    typer.echo(
        f"Forwarding ({forwarding.mode}): "
        f"{forwarding.from_.host}:{forwarding.from_.port} <-> "
        f"{forwarding.to.host}:{forwarding.to.port}"
    )


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
