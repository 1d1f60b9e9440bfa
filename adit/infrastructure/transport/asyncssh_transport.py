"""
SSH transport implementation on top of asyncssh.

``AsyncSSHTransport`` turns asyncssh's coroutine API into the event-driven
transport contract used by the tunnel core: ``connect`` returns at once and
the outcome arrives as ``ready``/``error``/``close`` events, remote-forwarded
connections arrive as ``tcp connection`` events.
"""

import asyncio
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

import asyncssh
from loguru import logger

from ...core.exceptions import TransportError
from ...core.interfaces.transport import (
    ForwardInCallback, ForwardOutCallback, IStream, ITransport
)
from .streams import AsyncioStream, TaskSet

CLIENT_VERSION = "Adit_SSH_Tunnel_1.0"


class _ClientObserver(asyncssh.SSHClient):
    """Records why the connection was lost."""

    def __init__(self) -> None:
        self.exc: Optional[BaseException] = None

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.exc = exc


class AsyncSSHTransport(ITransport):
    """
    One asyncssh client connection.

    A transport object serves a single connection attempt. After ``end()``
    or a failed attempt it only reports ``close``; reconnecting means
    building a new object.
    """

    def __init__(
        self,
        known_hosts: Any = None,
        keepalive_interval: Optional[float] = 60,
        connect_timeout: Optional[float] = 30.0,
        client_version: str = CLIENT_VERSION,
        compression: bool = False
    ):
        """
        Initialize the transport.

        Args:
            known_hosts: asyncssh ``known_hosts`` argument; None disables
                host key checking
            keepalive_interval: Seconds between keepalive requests
            connect_timeout: Seconds allowed for the TCP connect and handshake
            client_version: SSH client version string
            compression: Whether to negotiate zlib compression
        """
        self._known_hosts = known_hosts
        self._keepalive_interval = keepalive_interval
        self._connect_timeout = connect_timeout
        self._client_version = client_version
        self._compression = compression

        self._handlers: Dict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._listeners: Dict[Tuple[str, int], asyncssh.SSHListener] = {}
        self._task: Optional["asyncio.Task[None]"] = None
        self._tasks = TaskSet()
        self._ended = False
        self._close_emitted = False

    @property
    def connection(self) -> Optional[asyncssh.SSHClientConnection]:
        return self._conn

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def connect(self, settings: Dict[str, Any]) -> None:
        if self._task is not None or self._ended:
            raise TransportError("Transport objects cannot be reconnected, build a new one")

        self._task = asyncio.get_running_loop().create_task(self._run(dict(settings)))

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True

        for listener in self._listeners.values():
            listener.close()
        self._listeners.clear()

        if self._conn is not None:
            self._conn.close()
        elif self._task is None:
            self._emit_close(None)
        elif not self._task.done() and self._task is not asyncio.current_task():
            # a failing attempt reports its own close once its handlers return
            self._task.cancel()

    def forward_in(self, host: str, port: int, callback: ForwardInCallback) -> None:
        if self._conn is None:
            callback(TransportError("Transport is not connected"))
            return

        self._tasks.spawn(self._forward_in(host, port, callback))

    def cancel_forward_in(self, host: str, port: int) -> None:
        listener = self._listeners.pop((host, port), None)
        if listener is not None:
            logger.debug(f"Cancelling remote listen on {host}:{port}")
            listener.close()

    def forward_out(
        self,
        src_host: str,
        src_port: int,
        dst_host: str,
        dst_port: int,
        callback: ForwardOutCallback
    ) -> None:
        if self._conn is None:
            callback(TransportError("Transport is not connected"), None)
            return

        self._tasks.spawn(self._forward_out(src_host, src_port, dst_host, dst_port, callback))

    def connect_kwargs(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Translate tunnel settings into ``asyncssh.connect`` arguments."""
        kwargs: Dict[str, Any] = {
            'host': settings['host'],
            'port': settings['port'],
            'username': settings.get('username'),
            'known_hosts': self._known_hosts,
            'client_version': self._client_version,
            'keepalive_interval': self._keepalive_interval,
            'connect_timeout': self._connect_timeout,
        }

        if not self._compression:
            kwargs['compression_algs'] = None

        # Exactly one authentication method reaches the server
        if settings.get('password'):
            kwargs['password'] = settings['password']
            kwargs['client_keys'] = None
            kwargs['agent_path'] = None
        elif settings.get('agent'):
            kwargs['agent_path'] = settings['agent']
        elif settings.get('private_key'):
            kwargs['client_keys'] = [asyncssh.import_private_key(settings['private_key'])]
            kwargs['agent_path'] = None
        else:
            raise TransportError("No credentials in transport settings")

        return kwargs

    async def _run(self, settings: Dict[str, Any]) -> None:
        target = f"{settings.get('host')}:{settings.get('port')}"

        try:
            conn, observer = await asyncssh.create_connection(
                _ClientObserver, **self.connect_kwargs(settings)
            )
        except asyncio.CancelledError:
            self._emit_close(None)
            raise
        except (OSError, asyncio.TimeoutError, asyncssh.Error, ValueError, TransportError) as e:
            error = e if isinstance(e, TransportError) else TransportError(
                f"Failed to connect to {target}: {e}", details={'target': target}
            )
            if error is not e:
                error.__cause__ = e
            self._emit('error', error)
            self._emit_close(error)
            return

        if self._ended:
            conn.close()
            await conn.wait_closed()
            self._emit_close(None)
            return

        self._conn = conn
        logger.debug(f"SSH connection established to {target}")
        self._emit('ready')

        await conn.wait_closed()

        lost: Optional[TransportError] = None
        if observer.exc is not None and not self._ended:
            lost = TransportError(f"Connection to {target} lost: {observer.exc}",
                                  details={'target': target})
            lost.__cause__ = observer.exc
            self._emit('error', lost)

        self._tasks.cancel_all()
        self._emit_close(lost)

    async def _forward_in(self, host: str, port: int, callback: ForwardInCallback) -> None:
        try:
            listener = await self._conn.start_server(
                partial(self._handler_factory, host, port), host, port
            )
        except (OSError, asyncssh.Error) as e:
            logger.debug(f"Remote listen on {host}:{port} failed: {e}")
            callback(e)
            return

        if self._ended:
            listener.close()
            callback(TransportError("Transport ended while the remote listener was starting"))
            return

        self._listeners[(host, port)] = listener
        callback(None)

    async def _forward_out(
        self,
        src_host: str,
        src_port: int,
        dst_host: str,
        dst_port: int,
        callback: ForwardOutCallback
    ) -> None:
        try:
            reader, writer = await self._conn.open_connection(
                dst_host, dst_port, orig_host=src_host, orig_port=src_port
            )
        except (OSError, asyncssh.Error) as e:
            logger.debug(f"Channel to {dst_host}:{dst_port} failed: {e}")
            callback(e, None)
            return

        callback(None, AsyncioStream(reader, writer))

    def _handler_factory(
        self,
        listen_host: str,
        listen_port: int,
        orig_host: str,
        orig_port: int
    ) -> Callable[[Any, Any], None]:
        info = {
            'src_host': orig_host,
            'src_port': orig_port,
            'dest_host': listen_host,
            'dest_port': listen_port,
        }

        def handler(reader: Any, writer: Any) -> None:
            stream: IStream = AsyncioStream(reader, writer)
            accepted = []

            def accept() -> IStream:
                accepted.append(True)
                return stream

            self._emit('tcp connection', info, accept, stream.close)
            if not accepted:
                logger.debug(f"No session took the channel from {orig_host}:{orig_port}")
                stream.close()

        return handler

    def _emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Transport '{event}' handler failed: {e}")

    def _emit_close(self, error: Optional[BaseException]) -> None:
        if self._close_emitted:
            return
        self._close_emitted = True
        self._emit('close', error)
