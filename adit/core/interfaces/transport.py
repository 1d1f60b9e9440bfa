"""
Collaborator contracts for the tunnel core.

The tunnel core never speaks SSH or TCP itself. It drives an SSH transport
object and a network object through the interfaces below and reacts to the
notifications they emit.

Transport events and their handler arguments:

- ``"ready"``: no arguments
- ``"error"``: the exception
- ``"close"``: the terminal exception or None
- ``"tcp connection"``: ``(info, accept, reject)`` where ``accept()``
  returns the inbound ``IStream`` of a remote-forwarded connection; a
  connection no handler accepts is closed by the transport
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

ForwardInCallback = Callable[[Optional[BaseException]], None]
ForwardOutCallback = Callable[[Optional[BaseException], Optional['IStream']], None]


class IStream(ABC):
    """A bidirectional byte stream: a TCP socket or an SSH channel."""

    @abstractmethod
    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes. Returns ``b""`` at end of stream."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Queue ``data`` for writing."""
        pass

    @abstractmethod
    async def drain(self) -> None:
        """Wait until the write buffer can accept more data."""
        pass

    @abstractmethod
    def write_eof(self) -> None:
        """Half-close the write side, if the stream supports it."""
        pass

    @abstractmethod
    def close(self) -> None:
        """End the stream. Must be idempotent."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether ``close()`` was called."""
        pass


class IListener(ABC):
    """A bound local TCP listener."""

    @abstractmethod
    def close(self) -> None:
        """Stop accepting connections."""
        pass

    @property
    @abstractmethod
    def address(self) -> Tuple[str, int]:
        """The bound ``(host, port)``."""
        pass


class ITransport(ABC):
    """
    An SSH transport connection.

    Every method returns immediately; outcomes are reported through the
    handlers registered with ``on`` and through the per-call callbacks.
    A transport object is used for a single connection attempt and is
    never reconnected after ``end()``.
    """

    @abstractmethod
    def connect(self, settings: Dict[str, Any]) -> None:
        """
        Start connecting.

        Args:
            settings: ``host``, ``port``, ``username`` plus exactly one of
                ``password``, ``agent`` or ``private_key``
        """
        pass

    @abstractmethod
    def on(self, event: str, handler: Callable[..., Any]) -> None:
        """Register a handler for a transport event."""
        pass

    @abstractmethod
    def off(self, event: str, handler: Callable[..., Any]) -> None:
        """Remove a handler registered with ``on``."""
        pass

    @abstractmethod
    def end(self) -> None:
        """Close the connection. A ``"close"`` event follows."""
        pass

    @abstractmethod
    def forward_in(self, host: str, port: int, callback: ForwardInCallback) -> None:
        """Ask the server to listen on ``host:port`` and forward connections back."""
        pass

    @abstractmethod
    def cancel_forward_in(self, host: str, port: int) -> None:
        """Stop the remote listener started by ``forward_in`` for ``host:port``."""
        pass

    @abstractmethod
    def forward_out(
        self,
        src_host: str,
        src_port: int,
        dst_host: str,
        dst_port: int,
        callback: ForwardOutCallback
    ) -> None:
        """Open a channel to ``dst_host:dst_port`` originating from ``src_host:src_port``."""
        pass


class INetwork(ABC):
    """Plain TCP: outbound connections and local listeners."""

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int,
        on_connected: Callable[[IStream], None],
        on_error: Callable[[BaseException], None]
    ) -> None:
        """Open a TCP connection and report the outcome through a callback."""
        pass

    @abstractmethod
    def create_server(
        self,
        host: str,
        port: int,
        on_connection: Callable[[IStream], None],
        on_listening: Callable[[Optional[BaseException], Optional[IListener]], None]
    ) -> None:
        """Start a TCP listener; ``on_listening`` reports the bind outcome."""
        pass
