import threading
import time
from collections import Counter

import pytest

from robotserver.protocol.types import SEQUENCE_MODULO, MessageKind, TaskStatusResult
from robotserver.utils.correlation import CorrelationTable
from robotserver.utils.errors import CorrelationError, RequestTimeoutError, SessionClosedError

KIND = MessageKind.QUERY_STATUS_RESP


class Recorder:
    """Collects (sequence, response, error) for every callback invocation."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def callback_for(self, tag):
        def _cb(response, error):
            with self._lock:
                self.calls.append((tag, response, error))

        return _cb

    def counts(self):
        with self._lock:
            return Counter(tag for tag, _, _ in self.calls)


def test_register_allocates_sequential_numbers():
    table = CorrelationTable()
    seqs = [table.register(KIND, None, lambda r, e: None) for _ in range(3)]
    assert seqs == [1, 2, 3]
    assert len(table) == 3
    assert 2 in table
    assert table.pending_sequences() == [1, 2, 3]


def test_resolve_fires_once_and_releases_slot():
    table = CorrelationTable()
    rec = Recorder()
    seq = table.register(KIND, None, rec.callback_for("a"))
    response = TaskStatusResult(value=1)

    assert table.resolve(seq, response)
    assert not table.resolve(seq, response)
    assert not table.fail(seq, RuntimeError("late"))
    assert rec.calls == [("a", response, None)]
    assert seq not in table
    assert table.expected_kind(seq) is None


def test_fail_then_resolve_is_noop():
    table = CorrelationTable()
    rec = Recorder()
    seq = table.register(KIND, None, rec.callback_for("a"))
    error = SessionClosedError("gone")
    assert table.fail(seq, error)
    assert not table.resolve(seq, TaskStatusResult())
    assert rec.calls == [("a", None, error)]


def test_expected_kind():
    table = CorrelationTable()
    seq = table.register(MessageKind.CANCEL_TASK_RESP, None, lambda r, e: None)
    assert table.expected_kind(seq) is MessageKind.CANCEL_TASK_RESP


def test_at_most_once_under_concurrent_resolve_and_fail():
    table = CorrelationTable()
    rec = Recorder()
    seqs = [table.register(KIND, None, rec.callback_for(i)) for i in range(300)]
    barrier = threading.Barrier(4)

    def resolver():
        barrier.wait()
        for seq in seqs:
            table.resolve(seq, TaskStatusResult())

    def failer():
        barrier.wait()
        for seq in reversed(seqs):
            table.fail(seq, RuntimeError("boom"))

    def sweeper():
        barrier.wait()
        table.fail_all(SessionClosedError("closed"))

    threads = [threading.Thread(target=t) for t in (resolver, failer, resolver, sweeper)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    counts = rec.counts()
    assert len(counts) == 300
    assert set(counts.values()) == {1}
    assert len(table) == 0


def test_resolve_races_timeout_only_first_wins():
    for _ in range(50):
        table = CorrelationTable()
        rec = Recorder()
        seq = table.register(KIND, 0.001, rec.callback_for("x"))
        barrier = threading.Barrier(2)

        def expire():
            barrier.wait()
            table.expire_overdue(now=time.monotonic() + 1.0)

        def resolve():
            barrier.wait()
            table.resolve(seq, TaskStatusResult())

        threads = [threading.Thread(target=expire), threading.Thread(target=resolve)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=2.0)
        table.stop()
        assert rec.counts() == Counter({"x": 1})


def test_wraparound_never_reuses_outstanding_numbers():
    table = CorrelationTable(start_sequence=SEQUENCE_MODULO - 2)
    noop = lambda r, e: None  # noqa: E731

    first = [table.register(KIND, None, noop) for _ in range(4)]
    assert first == [SEQUENCE_MODULO - 2, SEQUENCE_MODULO - 1, 0, 1]

    # Fill the rest of the space; every number handed out is unique
    rest = [table.register(KIND, None, noop) for _ in range(SEQUENCE_MODULO - 4)]
    assert len(set(first + rest)) == SEQUENCE_MODULO
    with pytest.raises(CorrelationError):
        table.register(KIND, None, noop)

    # Freeing one number makes exactly that number available again
    assert table.resolve(1234, TaskStatusResult())
    assert table.register(KIND, None, noop) == 1234


def test_allocation_skips_numbers_still_outstanding():
    table = CorrelationTable(start_sequence=SEQUENCE_MODULO - 1)
    noop = lambda r, e: None  # noqa: E731
    held = table.register(KIND, None, noop)  # 65535 stays outstanding
    for _ in range(SEQUENCE_MODULO - 1):
        seq = table.register(KIND, None, noop)
        table.resolve(seq, TaskStatusResult())
    # The counter wrapped back onto the held number and skipped it
    assert held == SEQUENCE_MODULO - 1
    assert table.register(KIND, None, noop) == 0
    assert table.pending_sequences() == [0, held]


def test_timeout_thread_fails_overdue_entries():
    table = CorrelationTable(tick_s=0.01)
    done = threading.Event()
    errors = []

    def cb(response, error):
        errors.append(error)
        done.set()

    table.register(KIND, 0.05, cb)
    try:
        assert table.is_active()
        assert done.wait(2.0)
        assert isinstance(errors[0], RequestTimeoutError)
        assert len(table) == 0
        assert table.get_stats()["timed_out"] == 1
    finally:
        table.stop()
    assert not table.is_active()


def test_expire_overdue_ignores_entries_without_deadline():
    table = CorrelationTable()
    rec = Recorder()
    table.register(KIND, None, rec.callback_for("forever"))
    table.register(KIND, 0, rec.callback_for("also-forever"))
    assert not table.get_stats()["timer_active"]
    assert table.expire_overdue(now=time.monotonic() + 3600) == 0
    assert len(table) == 2


def test_fail_all_reports_count():
    table = CorrelationTable()
    rec = Recorder()
    for i in range(3):
        table.register(KIND, None, rec.callback_for(i))
    assert table.fail_all(SessionClosedError("bye")) == 3
    assert table.fail_all(SessionClosedError("bye")) == 0
    assert all(isinstance(err, SessionClosedError) for _, _, err in rec.calls)


def test_raising_callback_does_not_propagate():
    table = CorrelationTable()

    def bad(response, error):
        raise RuntimeError("callback bug")

    seq = table.register(KIND, None, bad)
    assert table.resolve(seq, TaskStatusResult())
    assert len(table) == 0
