"""
Sequence-number correlation table for outstanding requests.

Provides:
- CorrelationTable: allocates wraparound-safe 16-bit sequence numbers, stores the
  caller's continuation, and completes each entry exactly once (response, failure,
  timeout or teardown)
- A background timer thread that fails overdue entries independently of receive
  activity
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .. import config as cfg
from ..protocol.types import SEQUENCE_MODULO, MessageKind, Response
from .errors import CorrelationError, RequestTimeoutError

logger = logging.getLogger(__name__)

# callback(response, error): exactly one of the two is not None
Callback = Callable[[Response | None, BaseException | None], None]


@dataclass
class PendingEntry:
    sequence: int
    kind: MessageKind
    callback: Callback
    deadline: float | None
    registered_at: float


class CorrelationTable:
    """
    Map in-flight sequence numbers to continuations.

    Notes:
    - All table mutation happens under one lock; callbacks always run outside it.
    - The first of resolve/fail/timeout for a sequence number wins; later calls for
      the same number are no-ops returning False.
    - The timeout thread starts on first register() with a deadline.
    """

    def __init__(self, start_sequence: int = 1, tick_s: float = cfg.TIMEOUT_TICK_S) -> None:
        self._tick_s = tick_s
        self._next_seq = start_sequence % SEQUENCE_MODULO

        self._lock = threading.Lock()
        self._pending: dict[int, PendingEntry] = {}

        self._running = False
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None

        self._stats = {"registered": 0, "resolved": 0, "failed": 0, "timed_out": 0}

    # ---------- lifecycle ----------

    def start(self) -> None:
        """Start the timeout thread if not already active."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._wake.clear()
            self._thread = threading.Thread(
                target=self._timeout_loop, name="robotserver-timeouts", daemon=True
            )
            self._thread.start()
        logger.debug("CorrelationTable timeout thread started")

    def stop(self) -> None:
        """Stop the timeout thread. Pending entries are left untouched."""
        with self._lock:
            self._running = False
            thread = self._thread
            self._thread = None
        self._wake.set()
        # Join outside of lock to avoid deadlocks
        if thread and thread is not threading.current_thread():
            thread.join(timeout=max(0.5, self._tick_s * 4))
        logger.debug("CorrelationTable timeout thread stopped")

    def is_active(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    # ---------- API ----------

    def register(self, kind: MessageKind, timeout: float | None, callback: Callback) -> int:
        """
        Allocate a sequence number for a request expecting a response of `kind`.

        timeout=None (or <= 0) registers without a deadline.
        Raises CorrelationError if every sequence number is outstanding.
        """
        now = time.monotonic()
        deadline = now + timeout if timeout is not None and timeout > 0 else None
        with self._lock:
            if len(self._pending) >= SEQUENCE_MODULO:
                raise CorrelationError(f"all {SEQUENCE_MODULO} sequence numbers are outstanding")
            seq = self._next_seq
            while seq in self._pending:
                seq = (seq + 1) % SEQUENCE_MODULO
            self._next_seq = (seq + 1) % SEQUENCE_MODULO
            self._pending[seq] = PendingEntry(seq, kind, callback, deadline, now)
            self._stats["registered"] += 1
            need_timer = deadline is not None and not self._running
        if need_timer:
            self.start()
        logger.log(cfg.TRACE, f"register seq={seq} kind={kind.name} timeout={timeout}")
        return seq

    def resolve(self, sequence: int, response: Response) -> bool:
        """Complete an entry with its response. Returns False if no entry was pending."""
        with self._lock:
            entry = self._pending.pop(sequence, None)
            if entry is None:
                return False
            self._stats["resolved"] += 1
        self._invoke(entry, response, None)
        return True

    def fail(self, sequence: int, error: BaseException) -> bool:
        """Complete an entry with an error. Returns False if no entry was pending."""
        with self._lock:
            entry = self._pending.pop(sequence, None)
            if entry is None:
                return False
            self._stats["failed"] += 1
        self._invoke(entry, None, error)
        return True

    def fail_all(self, error: BaseException) -> int:
        """Fail every outstanding entry with `error`; returns how many were failed."""
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
            self._stats["failed"] += len(entries)
        for entry in entries:
            self._invoke(entry, None, error)
        if entries:
            logger.debug(f"fail_all: failed {len(entries)} pending request(s): {error}")
        return len(entries)

    def expire_overdue(self, now: float | None = None) -> int:
        """Fail every entry whose deadline has passed; returns how many expired."""
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [
                self._pending.pop(seq)
                for seq, entry in list(self._pending.items())
                if entry.deadline is not None and entry.deadline <= now
            ]
            self._stats["timed_out"] += len(expired)
        for entry in expired:
            waited = now - entry.registered_at
            logger.debug(f"seq={entry.sequence} {entry.kind.name} timed out after {waited:.2f}s")
            self._invoke(
                entry, None, RequestTimeoutError(f"no {entry.kind.name} for seq {entry.sequence}")
            )
        return len(expired)

    def expected_kind(self, sequence: int) -> MessageKind | None:
        """Response kind the pending entry expects, or None if nothing is pending."""
        with self._lock:
            entry = self._pending.get(sequence)
            return entry.kind if entry else None

    def pending_sequences(self) -> list[int]:
        with self._lock:
            return sorted(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, sequence: object) -> bool:
        with self._lock:
            return sequence in self._pending

    def get_stats(self) -> dict:
        """Return counters and health information."""
        with self._lock:
            return {
                **self._stats,
                "pending": len(self._pending),
                "timer_active": self._running,
            }

    # ---------- internals ----------

    def _invoke(
        self, entry: PendingEntry, response: Response | None, error: BaseException | None
    ) -> None:
        try:
            entry.callback(response, error)
        except Exception:
            logger.exception(f"Callback for seq={entry.sequence} ({entry.kind.name}) raised")

    def _timeout_loop(self) -> None:
        while self._running:
            self._wake.wait(self._tick_s)
            if not self._running:
                break
            try:
                self.expire_overdue()
            except Exception:
                logger.exception("Timeout sweep failed")
