"""
Navigation task lifecycle over the correlation mechanism.

The robot runs at most one navigation task. NavigationTaskTracker mirrors that
with a two-state machine driven only by start and cancel outcomes; status
queries are pass-through snapshots and never move the tracker.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from enum import Enum

from ..protocol.types import (
    CancelTaskRequest,
    CancelTaskResult,
    NavigationPoint,
    NavigationTaskRequest,
    NavigationTaskResult,
    QueryStatusRequest,
    Request,
    Response,
    TaskStatusResult,
)
from ..transports.tcp_transport import TransportSession

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Response | None, BaseException | None], None]


class TaskState(str, Enum):
    """Tracker view of the robot's navigation task."""

    IDLE = "idle"
    RUNNING = "running"


class NavigationTaskTracker:
    """
    Start / cancel / query a navigation task and track whether one is running.

    Notes:
    - Every operation returns a Future resolving to the response object; protocol
      error codes are data, local failures (transport, timeout, teardown) are set
      as the future's exception. The optional callback receives (result, error).
    - A cancel answer that arrives before the answer to a start sent ahead of it
      supersedes that start: its late SUCCESS leaves the tracker Idle.
    - No polling happens here; call query_status() at whatever cadence you need.
    """

    def __init__(self, session: TransportSession, timeout: float | None = None) -> None:
        self._session = session
        self._timeout = timeout

        self._lock = threading.Lock()
        self._state = TaskState.IDLE
        self._tokens = itertools.count(1)
        self._inflight_starts: set[int] = set()
        self._superseded: set[int] = set()

        self.last_error: BaseException | None = None
        self.last_result: Response | None = None

    @property
    def state(self) -> TaskState:
        return self._state

    def is_running(self) -> bool:
        return self._state == TaskState.RUNNING

    def _set_state(self, new_state: TaskState, reason: str) -> None:
        # caller holds self._lock
        if self._state != new_state:
            logger.info(f"Navigation task {self._state.value} -> {new_state.value} ({reason})")
            self._state = new_state

    # ---------- operations ----------

    def start_task(
        self, points: Iterable[NavigationPoint], callback: ResultCallback | None = None
    ) -> Future:
        """Send a NavigationTaskRequest for the ordered path `points`."""
        path = tuple(points)
        if not path:
            raise ValueError("start_task requires at least one navigation point")

        with self._lock:
            token = next(self._tokens)
            self._inflight_starts.add(token)

        def _on_start(response: Response | None, error: BaseException | None) -> None:
            with self._lock:
                self._inflight_starts.discard(token)
                superseded = token in self._superseded
                self._superseded.discard(token)
                if error is not None:
                    self.last_error = error
                    logger.warning(f"Start navigation failed: {error}")
                elif isinstance(response, NavigationTaskResult) and response.succeeded:
                    if superseded:
                        logger.info("Start navigation succeeded after a cancel; staying idle")
                    else:
                        self._set_state(TaskState.RUNNING, "start succeeded")
                else:
                    code = getattr(response, "error_code", None)
                    logger.warning(f"Start navigation rejected by robot: error_code={code}")

        logger.debug(f"Starting navigation task with {len(path)} point(s)")
        try:
            return self._send(NavigationTaskRequest(points=path), _on_start, callback)
        except Exception:
            with self._lock:
                self._inflight_starts.discard(token)
            raise

    def cancel_task(self, callback: ResultCallback | None = None) -> Future:
        """Send a CancelTaskRequest; allowed in any state."""
        with self._lock:
            pending_starts = set(self._inflight_starts)

        def _on_cancel(response: Response | None, error: BaseException | None) -> None:
            with self._lock:
                if error is not None:
                    self.last_error = error
                    logger.warning(f"Cancel navigation failed: {error}")
                    return
                # The robot answers in send order, so a start still awaiting its
                # answer here has been overtaken and its outcome is stale
                self._superseded |= pending_starts & self._inflight_starts
                if isinstance(response, CancelTaskResult) and response.succeeded:
                    self._set_state(TaskState.IDLE, "cancel succeeded")
                else:
                    code = getattr(response, "error_code", None)
                    logger.warning(f"Cancel navigation rejected by robot: error_code={code}")

        return self._send(CancelTaskRequest(), _on_cancel, callback)

    def query_status(self, callback: ResultCallback | None = None) -> Future:
        """Send a QueryStatusRequest; the result is a TaskStatusResult snapshot."""

        def _on_status(response: Response | None, error: BaseException | None) -> None:
            if error is not None:
                logger.debug(f"Navigation status query failed: {error}")
            elif isinstance(response, TaskStatusResult):
                logger.debug(
                    f"Navigation status: value={response.value} status={response.status} "
                    f"error_code={response.error_code!r}"
                )

        return self._send(QueryStatusRequest(), _on_status, callback)

    # ---------- internals ----------

    def _send(
        self,
        request: Request,
        on_done: ResultCallback,
        callback: ResultCallback | None,
    ) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def _complete(response: Response | None, error: BaseException | None) -> None:
            on_done(response, error)
            if error is None:
                self.last_result = response
            if callback is not None:
                try:
                    callback(response, error)
                except Exception:
                    logger.exception(f"{request.kind.name} callback raised")
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(response)

        self._session.send(request, _complete, self._timeout)
        return future
