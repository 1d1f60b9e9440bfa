"""
Public tunnel facade.

``Adit`` wires the auth and port resolvers, the connection state machine
and the forwarding sessions behind the small surface a tunnel CLI needs::

    tunnel = Adit("9000:example.com:80 user@bastion")
    await tunnel.forward(retries=3)
"""

import asyncio
import getpass
import os
import random
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from loguru import logger

from ..core.domain.models import (
    DEFAULT_HOST, DEFAULT_SSH_PORT, ConnectionState, Endpoint, TunnelConfig
)
from ..core.exceptions import ConfigurationError
from ..core.interfaces.transport import INetwork, ITransport
from ..core.services.event_bus import EventEmitter, EventHandler
from .auth import AuthResolver, KeyReader
from .connection import ConnectionManager
from .forwarding import EndpointLike, ForwardInSession, ForwardOutSession, ForwardSession
from .ports import PortResolver
from .registry import StreamRegistry

# "<from_port>:<to_host>:<to_port> [ssh://][user@]host[:port]"
_FORWARD_RE = re.compile(r"^(?P<from_port>\d+):(?P<to_host>[^:\s]+):(?P<to_port>\d+)$")
_TARGET_RE = re.compile(
    r"^(?:ssh://)?(?:(?P<user>[^@\s]+)@)?(?P<host>\[[^\]]+\]|[^:@\s/]+)(?::(?P<port>\d+))?/?$"
)


def parse_connection_string(string: str, password: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse ``"9000:example.com:80 user@host:22"`` into tunnel settings.

    Raises:
        ConfigurationError: If the string does not follow the grammar
    """
    parts = string.split()
    if len(parts) != 2:
        raise ConfigurationError(
            f"Expected '<from_port>:<to_host>:<to_port> [user@]host[:port]', got {string!r}"
        )

    forward = _FORWARD_RE.match(parts[0])
    if not forward:
        raise ConfigurationError(f"Invalid forward spec {parts[0]!r}")

    target = _TARGET_RE.match(parts[1])
    if not target:
        raise ConfigurationError(f"Invalid SSH target {parts[1]!r}")

    return {
        'host': target.group('host').strip('[]'),
        'port': int(target.group('port') or DEFAULT_SSH_PORT),
        'username': target.group('user'),
        'password': password or None,
        'from': {
            'host': DEFAULT_HOST,
            'port': int(forward.group('from_port')),
        },
        'to': {
            'host': forward.group('to_host'),
            'port': int(forward.group('to_port')),
        },
    }


def _default_transport_factory() -> ITransport:
    from ..infrastructure.transport.asyncssh_transport import AsyncSSHTransport
    return AsyncSSHTransport()


def _default_network() -> INetwork:
    from ..infrastructure.transport.streams import AsyncioNetwork
    return AsyncioNetwork()


class Adit:
    """
    One SSH tunnel: a single transport connection multiplexed into any
    number of forward-in and forward-out sessions.
    """

    parse = staticmethod(parse_connection_string)

    def __init__(
        self,
        settings: Union[str, Mapping[str, Any]],
        password: Optional[str] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
        transport_factory: Optional[Callable[[], ITransport]] = None,
        network: Optional[INetwork] = None,
        key_reader: Optional[KeyReader] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the tunnel. Authentication is resolved here so that a
        missing credential fails before anything touches the network.

        Args:
            settings: Connection string or mapping with ``host``, ``port``
                (int or ``[min, max]``), ``username``, ``password``,
                ``agent``, ``key``, ``retries``, ``retry_delay``, ``from``
                and ``to``, or a configuration object exposing
                ``to_tunnel_settings()``
            password: Password used when the settings carry none
            env: Environment values (``USER``, ``SSH_AUTH_SOCK``, ``HOME``);
                defaults to ``os.environ`` plus the login name of the process
            transport_factory: Builds SSH transport objects (asyncssh by default)
            network: Plain TCP collaborator (asyncio streams by default)
            key_reader: Reads private key files
            rng: Random source for port ranges

        Raises:
            ConfigurationError: If the settings are invalid or no
                authentication method can be resolved
        """
        if isinstance(settings, str):
            settings = parse_connection_string(settings, password)
        elif hasattr(settings, 'to_tunnel_settings'):
            settings = settings.to_tunnel_settings()

        if password and not settings.get('password'):
            settings = {**settings, 'password': password}

        username = settings.get('username')
        if env is None:
            env = os.environ
            username = username or env.get('USER') or _current_user()
        else:
            username = username or env.get('USER')

        self.events = EventEmitter(source="adit")
        self._ports = PortResolver(rng)
        self._network = network or _default_network()
        self._sessions: List[ForwardSession] = []

        credentials = AuthResolver(key_reader).resolve(
            password=settings.get('password'),
            agent_socket_path=settings.get('agent'),
            private_key_path=settings.get('key'),
            env=env
        )

        self.config = TunnelConfig(
            host=settings.get('host'),
            username=username,
            credentials=credentials,
            port=settings.get('port') or DEFAULT_SSH_PORT,
            retries=int(settings.get('retries') or 0),
            retry_delay=float(settings.get('retry_delay') or 0.0)
        )

        self.from_ = Endpoint.from_value(settings.get('from')) if settings.get('from') else None
        self.to = Endpoint.from_value(settings.get('to')) if settings.get('to') else None

        self._manager = ConnectionManager(
            self.config,
            transport_factory or _default_transport_factory,
            self.events,
            self._ports
        )

        logger.debug(
            f"Tunnel configured for {self.config.username}@{self.config.host} "
            f"({credentials.kind} auth)"
        )

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> Optional[int]:
        """Port of the current connection attempt."""
        return self._manager.port

    @property
    def username(self) -> Optional[str]:
        return self.config.username

    @property
    def state(self) -> ConnectionState:
        return self._manager.state

    @property
    def connection(self) -> ITransport:
        """The current transport object."""
        return self._manager.transport

    @property
    def streams(self) -> StreamRegistry:
        """Registry of the pipes on the current transport."""
        return self._manager.registry

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def sessions(self) -> List[ForwardSession]:
        return list(self._sessions)

    def on(self, event: str, handler: EventHandler) -> str:
        """Subscribe to ``data``, ``error``, ``close``, ``tcp connection`` or ``state``."""
        return self.events.on(event, handler)

    def off(self, subscription_id: str) -> bool:
        return self.events.off(subscription_id)

    def open(self, retries: Optional[int] = None) -> "asyncio.Future[ConnectionManager]":
        """Connect with a retry budget; see ``ConnectionManager.open``."""
        return self._manager.open(self.config.retries if retries is None else retries)

    def connect(self, retries: Optional[int] = None) -> None:
        self._manager.connect(self.config.retries if retries is None else retries)

    def close(self) -> None:
        """Stop every session and end the transport."""
        self.stop_sessions()
        self._manager.close()

    def stop_sessions(self) -> None:
        """Stop the forwarding sessions but keep the transport connection."""
        for session in self._sessions:
            session.stop()
        self._sessions.clear()

    def in_(self, from_: EndpointLike, to: EndpointLike) -> "asyncio.Future[None]":
        """Forward connections arriving at remote ``from_`` to local ``to``."""
        session = ForwardInSession(
            self._manager.transport, self._manager.registry, self._network,
            self.events, self._ports
        )
        self._sessions.append(session)
        return session.start(from_, to)

    def out(self, from_: EndpointLike, to: EndpointLike) -> "asyncio.Future[None]":
        """Forward connections accepted on local ``from_`` to remote ``to``."""
        session = ForwardOutSession(
            self._manager.transport, self._manager.registry, self._network,
            self.events, self._ports
        )
        self._sessions.append(session)
        return session.start(from_, to)

    async def forward(self, retries: Optional[int] = None) -> "Adit":
        """Open the connection, then forward local ``from`` to remote ``to``."""
        self._require_endpoints()
        await self.open(retries)
        await self.out(self.from_, self.to)
        return self

    async def reverse(self, retries: Optional[int] = None) -> "Adit":
        """Open the connection, then pull remote ``to`` back to local ``from``."""
        self._require_endpoints()
        await self.open(retries)
        await self.in_(self.to, self.from_)
        return self

    def _require_endpoints(self) -> None:
        if self.from_ is None or self.to is None:
            raise ConfigurationError("Both 'from' and 'to' endpoints are required")

    def __repr__(self) -> str:
        return f"Adit({self.config.username}@{self.config.host}, state={self.state.value})"


def _current_user() -> Optional[str]:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None
