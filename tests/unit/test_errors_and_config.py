import logging

import pytest

from robotserver import config as cfg
from robotserver.utils.errors import (
    CorrelationError,
    RequestTimeoutError,
    RobotServerError,
    SessionClosedError,
    TransportError,
)


@pytest.mark.parametrize(
    "exc_type, prefix",
    [
        (TransportError, "Transport Error"),
        (CorrelationError, "Correlation Error"),
        (RequestTimeoutError, "Request Timeout"),
        (SessionClosedError, "Session Closed"),
    ],
)
def test_error_messages_carry_prefix(exc_type, prefix):
    err = exc_type("seq 7")
    assert str(err) == f"{prefix}: seq 7"
    assert err.original_message == "seq 7"
    assert isinstance(err, RobotServerError)
    assert isinstance(err, RuntimeError)


def test_timeout_and_closed_are_correlation_errors():
    assert issubclass(RequestTimeoutError, CorrelationError)
    assert issubclass(SessionClosedError, CorrelationError)
    assert not issubclass(TransportError, CorrelationError)


def test_trace_level_registered():
    assert logging.getLevelName(cfg.TRACE) == "TRACE"
    assert hasattr(logging.getLogger("robotserver.test"), "trace")


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("ROBOTSERVER_TEST_FLOAT", "2.5")
    monkeypatch.setenv("ROBOTSERVER_TEST_INT", "nope")
    monkeypatch.setenv("ROBOTSERVER_TEST_BOOL", "yes")
    assert cfg._env_float("ROBOTSERVER_TEST_FLOAT", 1.0) == 2.5
    assert cfg._env_int("ROBOTSERVER_TEST_INT", 9) == 9
    assert cfg._env_bool("ROBOTSERVER_TEST_BOOL") is True
    assert cfg._env_float("ROBOTSERVER_TEST_MISSING", 1.0) == 1.0

