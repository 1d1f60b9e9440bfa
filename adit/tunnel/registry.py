"""
Forwarded connection pipes and their registry.

A ``PipeHandle`` binds a local stream and a remote stream for the lifetime
of one forwarded connection and copies bytes both ways. The
``StreamRegistry`` keeps every handle created on one transport connection so
they can all be ended when that transport closes.
"""

import asyncio
from typing import Any, Callable, Iterator, List, Optional

from loguru import logger

from ..core.exceptions import PipeError
from ..core.interfaces.transport import IStream

DEFAULT_CHUNK_SIZE = 65536


class PipeHandle:
    """
    Bidirectional pipe between two streams.

    Each direction runs as its own task. End of stream on one side
    half-closes the other side; the handle closes itself once both
    directions finished or as soon as either direction fails. Closing
    never touches any other pipe.
    """

    def __init__(
        self,
        local: IStream,
        remote: IStream,
        on_data: Optional[Callable[[bytes], Any]] = None,
        on_error: Optional[Callable[[PipeError], Any]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        name: Optional[str] = None
    ):
        self.local = local
        self.remote = remote
        self.name = name or f"pipe-{id(self):x}"
        self._on_data = on_data
        self._on_error = on_error
        self._chunk_size = chunk_size
        self._tasks: List["asyncio.Task[None]"] = []
        self._finished = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def streams(self) -> tuple:
        return self.local, self.remote

    def start(self) -> None:
        """Start copying in both directions on the running loop."""
        if self._closed or self._tasks:
            return

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._copy(self.remote, self.local, "remote->local")),
            loop.create_task(self._copy(self.local, self.remote, "local->remote")),
        ]

    def close(self) -> None:
        """End both streams. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True

        current = asyncio.current_task() if self._tasks else None
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

        for stream in (self.local, self.remote):
            try:
                stream.close()
            except Exception as e:
                logger.debug(f"Error closing stream of {self.name}: {e}")

        logger.debug(f"Closed {self.name}")

    async def _copy(self, source: IStream, sink: IStream, direction: str) -> None:
        try:
            while True:
                data = await source.read(self._chunk_size)
                if not data:
                    break

                if source is self.remote and self._on_data:
                    self._on_data(data)

                sink.write(data)
                await sink.drain()

            if not sink.closed:
                sink.write_eof()

        except asyncio.CancelledError:
            raise

        except Exception as e:
            error = PipeError(
                f"{self.name} {direction} failed: {e}",
                details={'pipe': self.name, 'direction': direction}
            )
            error.__cause__ = e
            logger.debug(str(error))
            self.close()
            if self._on_error:
                self._on_error(error)
            return

        self._finished += 1
        if self._finished == 2:
            self.close()


class StreamRegistry:
    """
    Append-only collection of the pipes of one transport connection.

    ``drain`` closes every handle and empties the registry. It runs once;
    a handle added after the drain is closed on arrival because its
    transport is already gone.
    """

    def __init__(self) -> None:
        self._handles: List[PipeHandle] = []
        self._drained = False

    def add(self, handle: PipeHandle) -> None:
        if self._drained:
            logger.debug(f"Registry already drained, closing late {handle.name}")
            handle.close()
            return

        self._handles.append(handle)

    def drain(self) -> int:
        """Close every registered handle. Returns how many were closed."""
        if self._drained:
            return 0
        self._drained = True

        handles, self._handles = self._handles, []
        for handle in handles:
            handle.close()

        if handles:
            logger.debug(f"Drained {len(handles)} pipe(s)")

        return len(handles)

    @property
    def drained(self) -> bool:
        return self._drained

    @property
    def active(self) -> int:
        """Number of registered handles that are still open."""
        return sum(1 for handle in self._handles if not handle.closed)

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[PipeHandle]:
        return iter(list(self._handles))

