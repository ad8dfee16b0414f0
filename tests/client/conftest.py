"""Fixtures for client tests."""

from __future__ import annotations

import pytest
from fakes import FakeClock, FakeTransport

from hubclient.client.throttle import clear_shared_throttles
from hubclient.client.types import ClientConfig


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(token="ghp_testtoken")


@pytest.fixture(autouse=True)
def _clear_shared_throttles() -> None:
    clear_shared_throttles()
