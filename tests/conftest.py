"""
Shared fixtures for the tunnel tests.
"""

import random
from typing import Callable, List

import pytest

from adit.core.domain.models import Credentials, TunnelConfig

from .fakes import FakeNetwork, FakeTransport


@pytest.fixture
def transports() -> List[FakeTransport]:
    """Every transport built by ``transport_factory``, in order."""
    return []


@pytest.fixture
def transport_factory(transports: List[FakeTransport]) -> Callable[[], FakeTransport]:
    def factory() -> FakeTransport:
        transport = FakeTransport()
        transports.append(transport)
        return transport
    return factory


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def tunnel_config() -> TunnelConfig:
    return TunnelConfig(
        host="bastion.example.com",
        username="deploy",
        credentials=Credentials(password="s3cret"),
        port=22
    )
