"""
Forwarding sessions.

``ForwardInSession`` asks the SSH server to listen on a remote port and pipes
every inbound channel to a local TCP target. ``ForwardOutSession`` listens
locally and pipes every accepted socket through a new outbound channel.
Failures of a single forwarded connection are emitted as ``PipeError``
events and never touch the session future or any other pipe.
"""

import asyncio
from typing import Any, Callable, Dict, Mapping, Optional, Union

from loguru import logger

from ..core.domain.events import TunnelEvent
from ..core.domain.models import Endpoint
from ..core.exceptions import ForwardSetupError, PipeError
from ..core.interfaces.transport import IListener, INetwork, IStream, ITransport
from ..core.services.event_bus import EventEmitter
from .ports import PortResolver
from .registry import PipeHandle, StreamRegistry

EndpointLike = Union[Endpoint, Mapping[str, Any], None]


class ForwardSession:
    """Shared plumbing of the forward-in and forward-out sessions."""

    direction = "forward"

    def __init__(
        self,
        transport: ITransport,
        registry: StreamRegistry,
        network: INetwork,
        events: EventEmitter,
        port_resolver: Optional[PortResolver] = None
    ):
        self._transport = transport
        self._registry = registry
        self._network = network
        self._events = events
        self._ports = port_resolver or PortResolver()
        self._stopped = False
        self._pipe_count = 0

    @property
    def pipe_count(self) -> int:
        """How many pipes this session established."""
        return self._pipe_count

    def stop(self) -> None:
        """Stop piping new connections. Established pipes are left alone."""
        self._stopped = True

    def _pipe(self, local: IStream, remote: IStream, label: str) -> PipeHandle:
        self._pipe_count += 1
        handle = PipeHandle(
            local,
            remote,
            on_data=self._emit_data,
            on_error=self._emit_pipe_error,
            name=f"{self.direction}-pipe-{self._pipe_count} ({label})"
        )
        self._registry.add(handle)
        handle.start()
        logger.debug(f"Piping {handle.name}")
        return handle

    def _emit_data(self, data: bytes) -> None:
        self._events.emit(TunnelEvent.DATA, data)

    def _emit_pipe_error(self, error: PipeError) -> None:
        logger.warning(str(error))
        self._events.emit(TunnelEvent.ERROR, error)

    def _setup_failed(
        self,
        future: "asyncio.Future[None]",
        message: str,
        cause: BaseException
    ) -> None:
        error = ForwardSetupError(f"{message}: {cause}", details={'direction': self.direction})
        error.__cause__ = cause
        logger.error(str(error))
        self._events.emit(TunnelEvent.ERROR, error)
        if not future.done():
            future.set_exception(error)


class ForwardInSession(ForwardSession):
    """Remote -> local forwarding (reverse tunnel)."""

    direction = "in"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._remote: Optional[Endpoint] = None
        self._local: Optional[Endpoint] = None
        self._forwarded = False

    @property
    def remote(self) -> Optional[Endpoint]:
        return self._remote

    @property
    def local(self) -> Optional[Endpoint]:
        return self._local

    def start(self, remote: EndpointLike, local: EndpointLike) -> "asyncio.Future[None]":
        """
        Request the remote forward and pipe every inbound channel to ``local``.

        Args:
            remote: Where the SSH server listens
            local: Where inbound connections are delivered

        Returns:
            Future resolved when the server accepted the forward request
        """
        future: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._remote = remote = self._ports.resolve_endpoint(remote)
        self._local = local = self._ports.resolve_endpoint(local)

        self._transport.on('tcp connection', self._on_tcp_connection)

        def on_forwarded(error: Optional[BaseException] = None) -> None:
            if error:
                self._setup_failed(future, f"Remote forward of {remote} rejected", error)
                return

            self._forwarded = True
            if self._stopped:
                self._cancel_forward()
            else:
                logger.info(f"Forwarding remote {remote} -> local {local}")

            if not future.done():
                future.set_result(None)

        self._transport.forward_in(remote.host, remote.port, on_forwarded)
        return future

    def _on_tcp_connection(
        self,
        info: Optional[Dict[str, Any]],
        accept: Callable[[], IStream],
        reject: Optional[Callable[[], Any]] = None
    ) -> None:
        info = info or {}
        if self._remote is None or not self._accepts(info):
            return

        if self._stopped:
            return

        stream = accept()
        self._events.emit(TunnelEvent.TCP_CONNECTION, info)

        local = self._local
        origin = f"{info.get('src_host', '?')}:{info.get('src_port', '?')}"

        def connected(socket: IStream) -> None:
            self._pipe(socket, stream, f"{origin} -> {local}")

        def failed(error: BaseException) -> None:
            stream.close()
            pipe_error = PipeError(
                f"Cannot reach local target {local} for {origin}: {error}",
                details={'origin': origin, 'target': str(local)}
            )
            pipe_error.__cause__ = error
            self._emit_pipe_error(pipe_error)

        self._network.connect(local.host, local.port, connected, failed)

    def stop(self) -> None:
        """Detach from the transport and cancel the remote listener."""
        super().stop()
        self._transport.off('tcp connection', self._on_tcp_connection)
        if self._forwarded:
            self._cancel_forward()

    def _cancel_forward(self) -> None:
        self._forwarded = False
        self._transport.cancel_forward_in(self._remote.host, self._remote.port)
        logger.info(f"Stopped forwarding remote {self._remote}")

    def _accepts(self, info: Dict[str, Any]) -> bool:
        """Whether an inbound channel belongs to this session's remote port."""
        dest_port = info.get('dest_port')
        return dest_port is None or dest_port == self._remote.port


class ForwardOutSession(ForwardSession):
    """Local -> remote forwarding."""

    direction = "out"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._listener: Optional[IListener] = None
        self._local: Optional[Endpoint] = None
        self._remote: Optional[Endpoint] = None

    @property
    def listener(self) -> Optional[IListener]:
        return self._listener

    @property
    def local(self) -> Optional[Endpoint]:
        return self._local

    @property
    def remote(self) -> Optional[Endpoint]:
        return self._remote

    def start(self, local: EndpointLike, remote: EndpointLike) -> "asyncio.Future[None]":
        """
        Listen on ``local`` and pipe every accepted socket to ``remote``.

        Returns:
            Future resolved once the local listener is bound; it only
            reflects listener startup, never per-connection outcomes
        """
        future: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._local = local = self._ports.resolve_endpoint(local)
        self._remote = remote = self._ports.resolve_endpoint(remote)

        def on_listening(error: Optional[BaseException], listener: Optional[IListener]) -> None:
            if error:
                self._setup_failed(future, f"Cannot listen on {local}", error)
                return

            self._listener = listener
            logger.info(f"Forwarding local {local} -> remote {remote}")
            if not future.done():
                future.set_result(None)

        self._network.create_server(local.host, local.port, self._on_connection, on_listening)
        return future

    def stop(self) -> None:
        """Close the local listener."""
        super().stop()
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def _on_connection(self, socket: IStream) -> None:
        if self._stopped:
            socket.close()
            return

        local, remote = self._local, self._remote

        def on_channel(error: Optional[BaseException], stream: Optional[IStream] = None) -> None:
            if error or stream is None:
                pipe_error = PipeError(
                    f"Cannot open channel to {remote}: {error}",
                    details={'target': str(remote)}
                )
                pipe_error.__cause__ = error
                self._emit_pipe_error(pipe_error)
                socket.close()
                return

            self._pipe(socket, stream, f"{local} -> {remote}")

        self._transport.forward_out(local.host, local.port, remote.host, remote.port, on_channel)
