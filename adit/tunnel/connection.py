"""
Transport connection lifecycle.

The ``ConnectionManager`` owns the SSH transport object of a tunnel and
drives it through ``IDLE -> CONNECTING -> READY`` with a bounded number of
reconnects on error. Every reconnect builds a brand-new transport object and
a fresh ``StreamRegistry``; a transport is never reused after an error.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..core.domain.events import TunnelEvent
from ..core.domain.models import ConnectionState, TunnelConfig
from ..core.exceptions import TransportError
from ..core.interfaces.transport import ITransport
from ..core.services.event_bus import EventEmitter
from .ports import PortResolver
from .registry import StreamRegistry

TransportFactory = Callable[[], ITransport]


class ConnectionManager:
    """
    Connect/retry state machine for one SSH transport connection.

    The future returned by ``open`` settles exactly once: with this manager
    when the transport reports ``ready``, or with the error that exhausted
    the retry budget.
    """

    def __init__(
        self,
        config: TunnelConfig,
        transport_factory: TransportFactory,
        events: Optional[EventEmitter] = None,
        port_resolver: Optional[PortResolver] = None
    ):
        """
        Initialize the connection manager.

        Args:
            config: Resolved tunnel configuration
            transport_factory: Builds a new, unconnected transport object
            events: Event channel for error/close/state notifications
            port_resolver: Resolves the transport port spec per attempt
        """
        self._config = config
        self._factory = transport_factory
        self._events = events or EventEmitter(source="connection")
        self._ports = port_resolver or PortResolver()

        self._state = ConnectionState.IDLE
        self._retries_left = 0
        self._port: Optional[int] = None
        self._future: Optional["asyncio.Future[ConnectionManager]"] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._listening = False
        self._closing = False

        self._transport_count = 0
        self._transport: ITransport = self._new_transport()
        self._registry = StreamRegistry()
        self._attached: Optional[ITransport] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def config(self) -> TunnelConfig:
        return self._config

    @property
    def port(self) -> Optional[int]:
        """Port of the current connection attempt."""
        return self._port

    @property
    def retries_left(self) -> int:
        return self._retries_left

    @property
    def transport(self) -> ITransport:
        return self._transport

    @property
    def registry(self) -> StreamRegistry:
        """Registry of the current transport connection."""
        return self._registry

    @property
    def transport_count(self) -> int:
        """How many transport objects were built, the first one included."""
        return self._transport_count

    @property
    def events(self) -> EventEmitter:
        return self._events

    def open(self, retry_budget: int = 0) -> "asyncio.Future[ConnectionManager]":
        """
        Attach the transport handlers and connect.

        Args:
            retry_budget: How many reconnects are allowed after errors

        Returns:
            Future resolved with this manager once the transport is ready
        """
        if retry_budget < 0:
            raise ValueError(f"Retry budget must be non-negative, got {retry_budget}")

        if self._future is not None and not self._future.done():
            return self._future

        self._future = asyncio.get_running_loop().create_future()
        self._listening = True

        # a terminal state gets a fresh, attached transport inside connect()
        if not self._state.is_terminal:
            self._attach()

        self.connect(retry_budget)
        return self._future

    def connect(self, retry_budget: int = 0) -> None:
        """
        Start a connection attempt with the given remaining retry budget.

        Raises:
            ValueError: If the retry budget is negative
        """
        if retry_budget < 0:
            raise ValueError(f"Retry budget must be non-negative, got {retry_budget}")

        if self._state.is_terminal:
            self._renew()

        self._closing = False
        self._retries_left = retry_budget
        self._port = self._ports.resolve(self._config.port)

        settings: Dict[str, Any] = {
            'host': self._config.host,
            'port': self._port,
            'username': self._config.username,
        }
        settings.update(self._config.credentials.to_settings())

        self._set_state(ConnectionState.CONNECTING)
        logger.info(
            f"Connecting to {self._config.username}@{self._config.host}:{self._port} "
            f"using {self._config.credentials.kind} ({retry_budget} retries left)"
        )

        transport = self._transport
        try:
            transport.connect(settings)
        except Exception as e:
            error = e if isinstance(e, TransportError) else TransportError(
                f"Failed to start connection to {self._config.host}:{self._port}: {e}"
            )
            if error is not e:
                error.__cause__ = e
            self._on_error(transport, error)

    def close(self) -> None:
        """
        End the transport connection.

        Cleanup happens in the ``close`` handler. The retry budget is kept
        but no reconnect is attempted after an explicit close.
        """
        self._closing = True

        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

        if self._state is not ConnectionState.FAILED:
            self._set_state(ConnectionState.CLOSED)

        logger.info(f"Closing connection to {self._config.host}:{self._port}")
        self._transport.end()

    def _new_transport(self) -> ITransport:
        transport = self._factory()
        self._transport_count += 1
        return transport

    def _renew(self) -> None:
        """Replace the transport and registry after a terminal state."""
        self._transport = self._new_transport()
        self._registry = StreamRegistry()
        if self._listening:
            self._attach()

    def _attach(self) -> None:
        transport, registry = self._transport, self._registry
        if self._attached is transport:
            return
        self._attached = transport

        transport.on('ready', lambda *args: self._on_ready(transport))
        transport.on('error', lambda error=None, *args: self._on_error(transport, error))
        transport.on('close', lambda error=None, *args: self._on_close(transport, registry, error))

    def _on_ready(self, transport: ITransport) -> None:
        if transport is not self._transport:
            logger.debug("Ignoring ready event of a discarded transport")
            return

        if self._state is ConnectionState.READY:
            return

        self._set_state(ConnectionState.READY)
        logger.info(f"Connected to {self._config.host}:{self._port}")

        if self._future is not None and not self._future.done():
            self._future.set_result(self)

    def _on_error(self, transport: ITransport, error: Optional[BaseException]) -> None:
        if transport is not self._transport:
            logger.debug(f"Ignoring error of a discarded transport: {error}")
            return

        if error is None:
            error = TransportError(f"Unknown transport error on {self._config.host}:{self._port}")

        logger.warning(
            f"Transport error on {self._config.host}:{self._port}: {error} "
            f"({self._retries_left} retries left)"
        )
        self._events.emit(TunnelEvent.ERROR, error, retries_left=self._retries_left)
        self._retry(error)

    def _on_close(
        self,
        transport: ITransport,
        registry: StreamRegistry,
        error: Optional[BaseException]
    ) -> None:
        closed = registry.drain()
        logger.debug(f"Transport closed, {closed} pipe(s) ended")
        self._events.emit(TunnelEvent.CLOSE, error)

        if transport is not self._transport or self._state is ConnectionState.RETRYING:
            return

        if self._state is not ConnectionState.FAILED:
            self._set_state(ConnectionState.CLOSED)

        if self._future is not None and not self._future.done():
            self._future.set_exception(error or TransportError(
                f"Connection to {self._config.host}:{self._port} closed before it was ready"
            ))

    def _retry(self, error: BaseException) -> None:
        if self._closing:
            if self._future is not None and not self._future.done():
                self._future.set_exception(error)
            return

        if self._retries_left == 0:
            self._set_state(ConnectionState.FAILED)
            logger.error(f"Giving up on {self._config.host}: {error}")
            if self._future is not None and not self._future.done():
                self._future.set_exception(error)
            return

        budget = self._retries_left - 1
        self._set_state(ConnectionState.RETRYING)

        old = self._transport
        self._transport = self._new_transport()
        self._registry = StreamRegistry()
        old.end()

        if self._listening:
            self._attach()

        delay = self._config.retry_delay
        if delay > 0:
            logger.info(f"Reconnecting in {delay}s ({budget} retries left after this one)")
            self._retry_handle = asyncio.get_running_loop().call_later(
                delay, self._delayed_connect, budget
            )
        else:
            self.connect(budget)

    def _delayed_connect(self, budget: int) -> None:
        self._retry_handle = None
        if self._state is ConnectionState.RETRYING:
            self.connect(budget)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return

        previous, self._state = self._state, state
        logger.debug(f"Connection state {previous.value} -> {state.value}")
        self._events.emit(TunnelEvent.STATE, state, previous=previous)
