"""
asyncio stream adapters.

``AsyncioStream`` wraps any reader/writer pair with the asyncio streams API,
which covers both plain TCP sockets and asyncssh channel streams.
``AsyncioNetwork`` opens TCP connections and listeners and reports the
outcome through callbacks.
"""

import asyncio
from typing import Any, Callable, Optional, Set, Tuple

from loguru import logger

from ...core.interfaces.transport import IListener, INetwork, IStream


class TaskSet:
    """Holds references to fire-and-forget tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def spawn(self, coro: Any) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            if not task.done():
                task.cancel()

    def __len__(self) -> int:
        return len(self._tasks)


class AsyncioStream(IStream):
    """Stream over an asyncio-style ``(reader, writer)`` pair."""

    def __init__(self, reader: Any, writer: Any):
        self._reader = reader
        self._writer = writer
        self._closed = False

    @property
    def reader(self) -> Any:
        return self._reader

    @property
    def writer(self) -> Any:
        return self._writer

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    def write(self, data: bytes) -> None:
        self._writer.write(data)

    async def drain(self) -> None:
        await self._writer.drain()

    def write_eof(self) -> None:
        can_write_eof = getattr(self._writer, 'can_write_eof', None)
        if can_write_eof is None or can_write_eof():
            self._writer.write_eof()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()

    def peername(self) -> Optional[Tuple[str, int]]:
        get_extra_info = getattr(self._writer, 'get_extra_info', None)
        return get_extra_info('peername') if get_extra_info else None


class AsyncioListener(IListener):
    """Listener over an ``asyncio.Server``."""

    def __init__(self, server: asyncio.AbstractServer):
        self._server = server

    @property
    def address(self) -> Tuple[str, int]:
        sockets = getattr(self._server, 'sockets', None) or ()
        for sock in sockets:
            name = sock.getsockname()
            return name[0], name[1]
        return "", 0

    def close(self) -> None:
        self._server.close()


class AsyncioNetwork(INetwork):
    """TCP connections and listeners on the running event loop."""

    def __init__(self, connect_timeout: Optional[float] = 30.0):
        self._connect_timeout = connect_timeout
        self._tasks = TaskSet()

    def connect(
        self,
        host: str,
        port: int,
        on_connected: Callable[[IStream], None],
        on_error: Callable[[BaseException], None]
    ) -> None:
        self._tasks.spawn(self._connect(host, port, on_connected, on_error))

    def create_server(
        self,
        host: str,
        port: int,
        on_connection: Callable[[IStream], None],
        on_listening: Callable[[Optional[BaseException], Optional[IListener]], None]
    ) -> None:
        self._tasks.spawn(self._serve(host, port, on_connection, on_listening))

    async def _connect(
        self,
        host: str,
        port: int,
        on_connected: Callable[[IStream], None],
        on_error: Callable[[BaseException], None]
    ) -> None:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"TCP connect to {host}:{port} failed: {e}")
            on_error(e)
            return

        on_connected(AsyncioStream(reader, writer))

    async def _serve(
        self,
        host: str,
        port: int,
        on_connection: Callable[[IStream], None],
        on_listening: Callable[[Optional[BaseException], Optional[IListener]], None]
    ) -> None:
        def accepted(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            on_connection(AsyncioStream(reader, writer))

        try:
            server = await asyncio.start_server(accepted, host, port)
        except OSError as e:
            logger.debug(f"Listening on {host}:{port} failed: {e}")
            on_listening(e, None)
            return

        on_listening(None, AsyncioListener(server))
