"""
Pytest configuration and shared fixtures for the RobotServer SDK tests.

Provides fixtures for the simulated robot stream, connected sessions and facades,
plus a polling helper for assertions on work done by background threads.
"""

import logging
import time
from collections.abc import Callable, Generator

import pytest

from robotserver.client.sdk import RobotServerSdk, SdkOptions
from robotserver.transports.mock_transport import MockRobotStream
from robotserver.transports.tcp_transport import TransportSession

logger = logging.getLogger(__name__)

TEST_HOST = "127.0.0.1"
TEST_PORT = 30000


def wait_until(predicate: Callable[[], bool], timeout: float = 1.0, interval: float = 0.005) -> bool:
    """Poll predicate() until it returns True or timeout expires."""
    end_time = time.time() + timeout
    while time.time() < end_time:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ============================================================================
# SIMULATED ROBOT FIXTURES
# ============================================================================


@pytest.fixture
def mock_stream() -> MockRobotStream:
    """Simulated robot that answers every request immediately."""
    return MockRobotStream()


@pytest.fixture
def held_stream() -> MockRobotStream:
    """Simulated robot that holds requests until respond_to()/respond_all()."""
    return MockRobotStream(auto_respond=False)


def _connected_session(stream: MockRobotStream, request_timeout: float) -> TransportSession:
    session = TransportSession(lambda: stream, request_timeout=request_timeout, connect_timeout=1.0)
    assert session.connect(TEST_HOST, TEST_PORT)
    return session


@pytest.fixture
def session(mock_stream) -> Generator[TransportSession, None, None]:
    """Connected TransportSession over the auto-responding robot."""
    s = _connected_session(mock_stream, request_timeout=2.0)
    yield s
    s.disconnect()


@pytest.fixture
def held_session(held_stream) -> Generator[TransportSession, None, None]:
    """Connected TransportSession over the holding robot."""
    s = _connected_session(held_stream, request_timeout=2.0)
    yield s
    s.disconnect()


@pytest.fixture
def sdk(mock_stream) -> Generator[RobotServerSdk, None, None]:
    """Connected RobotServerSdk over the auto-responding robot."""
    client = RobotServerSdk(SdkOptions(request_timeout=1.0, connect_timeout=1.0), stream_factory=lambda: mock_stream)
    assert client.connect(TEST_HOST, TEST_PORT)
    yield client
    client.disconnect()


@pytest.fixture(name="wait_until")
def wait_until_fixture() -> Callable[..., bool]:
    """Expose wait_until to tests without importing conftest."""
    return wait_until


# ============================================================================
# PYTEST CONFIGURATION HOOKS
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that run the full stack against the simulated robot"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that wait on real timeouts"
    )
