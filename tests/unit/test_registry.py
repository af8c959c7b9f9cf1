import pytest

from robotserver.protocol.registry import MessagePair, MessageRegistry, registry
from robotserver.protocol.types import (
    AsduType,
    CancelTaskResult,
    MessageKind,
    NavigationTaskResult,
    RealTimeStatus,
    TaskStatusResult,
)


@pytest.mark.parametrize(
    "kind, code",
    [
        (MessageKind.REAL_TIME_STATUS_REQ, 1002),
        (MessageKind.REAL_TIME_STATUS_RESP, 1002),
        (MessageKind.MOTION_CONTROL_REQ, 2),
        (MessageKind.NAVIGATION_TASK_REQ, 1003),
        (MessageKind.QUERY_STATUS_RESP, 1007),
        (MessageKind.CANCEL_TASK_REQ, 1004),
    ],
)
def test_type_codes(kind, code):
    assert registry.type_code(kind) == code


def test_response_kind_pairs_requests():
    assert registry.response_kind(MessageKind.QUERY_STATUS_REQ) is MessageKind.QUERY_STATUS_RESP
    assert registry.response_kind(MessageKind.CANCEL_TASK_REQ) is MessageKind.CANCEL_TASK_RESP


def test_new_response_returns_fresh_empty_objects():
    first = registry.new_response(MessageKind.REAL_TIME_STATUS_RESP)
    second = registry.new_response(MessageKind.REAL_TIME_STATUS_RESP)
    assert isinstance(first, RealTimeStatus)
    assert first == RealTimeStatus()
    assert first is not second
    assert isinstance(registry.new_response(MessageKind.NAVIGATION_TASK_RESP), NavigationTaskResult)
    assert isinstance(registry.new_response(MessageKind.CANCEL_TASK_RESP), CancelTaskResult)


def test_new_response_rejects_request_kind():
    with pytest.raises(ValueError):
        registry.new_response(MessageKind.QUERY_STATUS_REQ)


def test_kind_for_type_code():
    assert registry.kind_for_type_code(1007) is MessageKind.QUERY_STATUS_RESP
    assert registry.kind_for_type_code(2) is MessageKind.MOTION_CONTROL_RESP
    assert registry.kind_for_type_code(9999) is None


def test_list_type_codes():
    assert registry.list_type_codes() == [2, 1002, 1003, 1004, 1007]


def test_duplicate_type_code_is_rejected():
    pair = MessagePair(
        AsduType.QUERY_STATUS,
        MessageKind.QUERY_STATUS_REQ,
        MessageKind.QUERY_STATUS_RESP,
        TaskStatusResult,
    )
    with pytest.raises(ValueError):
        MessageRegistry((pair, pair))
