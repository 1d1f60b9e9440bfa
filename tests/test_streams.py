"""
Tests for the asyncio stream adapters over real loopback sockets.
"""

import asyncio
from typing import Any, List, Tuple

import pytest

from adit.core.services.event_bus import EventEmitter
from adit.infrastructure.transport.streams import AsyncioNetwork, AsyncioStream, TaskSet
from adit.tunnel.forwarding import ForwardOutSession
from adit.tunnel.registry import PipeHandle, StreamRegistry

from .fakes import FakeTransport


async def listen(network: AsyncioNetwork, accepted: List[AsyncioStream]) -> Any:
    """Start a loopback listener and return it once it is bound."""
    loop = asyncio.get_running_loop()
    ready: "asyncio.Future[Tuple[Any, Any]]" = loop.create_future()

    network.create_server(
        "127.0.0.1", 0, accepted.append,
        lambda error, listener: ready.set_result((error, listener))
    )
    error, listener = await asyncio.wait_for(ready, 5)
    assert error is None
    return listener


async def dial(network: AsyncioNetwork, port: int) -> Any:
    loop = asyncio.get_running_loop()
    outcome: "asyncio.Future[Any]" = loop.create_future()
    network.connect("127.0.0.1", port, outcome.set_result, outcome.set_result)
    return await asyncio.wait_for(outcome, 5)


async def wait_for_accept(accepted: List[AsyncioStream]) -> AsyncioStream:
    for _ in range(100):
        if accepted:
            return accepted[0]
        await asyncio.sleep(0.01)
    raise AssertionError("no connection accepted")


class TestAsyncioNetwork:
    """Test cases for AsyncioNetwork and AsyncioStream."""

    @pytest.mark.asyncio
    async def test_connect_and_exchange(self) -> None:
        network = AsyncioNetwork(connect_timeout=5)
        accepted: List[AsyncioStream] = []
        listener = await listen(network, accepted)
        host, port = listener.address
        assert host == "127.0.0.1" and port > 0

        client = await dial(network, port)
        assert isinstance(client, AsyncioStream)
        server = await wait_for_accept(accepted)

        client.write(b"ping")
        await client.drain()
        assert await server.read(4) == b"ping"

        client.write_eof()
        assert await server.read() == b""

        client.close()
        client.close()
        server.close()
        listener.close()
        assert client.closed

    @pytest.mark.asyncio
    async def test_connect_refused(self) -> None:
        network = AsyncioNetwork(connect_timeout=5)
        listener = await listen(network, [])
        port = listener.address[1]
        listener.close()
        await asyncio.sleep(0.05)

        outcome = await dial(network, port)

        assert isinstance(outcome, OSError)

    @pytest.mark.asyncio
    async def test_listen_on_used_port(self) -> None:
        network = AsyncioNetwork()
        listener = await listen(network, [])
        port = listener.address[1]

        loop = asyncio.get_running_loop()
        ready: "asyncio.Future[Tuple[Any, Any]]" = loop.create_future()
        network.create_server(
            "127.0.0.1", port, lambda stream: None,
            lambda error, second: ready.set_result((error, second))
        )
        error, second = await asyncio.wait_for(ready, 5)

        assert isinstance(error, OSError)
        assert second is None
        listener.close()

    @pytest.mark.asyncio
    async def test_pipe_between_real_sockets(self) -> None:
        network = AsyncioNetwork(connect_timeout=5)
        accepted: List[AsyncioStream] = []
        listener = await listen(network, accepted)
        port = listener.address[1]

        client = await dial(network, port)
        server_side = await wait_for_accept(accepted)

        other_accepted: List[AsyncioStream] = []
        upstream_listener = await listen(network, other_accepted)
        upstream_client = await dial(network, upstream_listener.address[1])
        upstream = await wait_for_accept(other_accepted)

        pipe = PipeHandle(server_side, upstream_client)
        pipe.start()

        client.write(b"request")
        await client.drain()
        assert await asyncio.wait_for(upstream.read(7), 5) == b"request"

        upstream.write(b"response")
        await upstream.drain()
        assert await asyncio.wait_for(client.read(8), 5) == b"response"

        pipe.close()
        for stream in (client, upstream):
            stream.close()
        listener.close()
        upstream_listener.close()

    @pytest.mark.asyncio
    async def test_failed_channel_closes_accepted_socket(self) -> None:
        network = AsyncioNetwork(connect_timeout=5)
        transport = FakeTransport()
        session = ForwardOutSession(transport, StreamRegistry(), network, EventEmitter())
        await asyncio.wait_for(
            session.start({'host': "127.0.0.1", 'port': 0}, {'host': "db", 'port': 5432}), 5
        )

        client = await dial(network, session.listener.address[1])
        for _ in range(100):
            if transport.forward_out_calls:
                break
            await asyncio.sleep(0.01)

        transport.forward_out_calls[0][4](ConnectionRefusedError("refused"), None)

        assert await asyncio.wait_for(client.read(), 5) == b""
        client.close()
        session.stop()


class TestTaskSet:

    @pytest.mark.asyncio
    async def test_tracks_until_done(self) -> None:
        tasks = TaskSet()
        gate = asyncio.Event()

        async def wait() -> None:
            await gate.wait()

        tasks.spawn(wait())
        assert len(tasks) == 1

        gate.set()
        await asyncio.sleep(0.01)
        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        tasks = TaskSet()
        task = tasks.spawn(asyncio.sleep(10))

        tasks.cancel_all()
        await asyncio.sleep(0.01)

        assert task.cancelled()
