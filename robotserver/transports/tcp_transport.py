"""
TCP transport session for the RobotServer link.

This module owns the single logical connection to the robot: the connect /
disconnect state machine, the framed send path, and the dedicated receive thread
that decodes responses and routes them through the correlation table.
"""

from __future__ import annotations

import logging
import select
import socket
import threading
from collections.abc import Callable
from concurrent.futures import Future
from enum import Enum
from typing import Protocol

from .. import config as cfg
from ..protocol import wire
from ..protocol.registry import registry
from ..protocol.types import Envelope, Request, Response
from ..utils.correlation import Callback, CorrelationTable
from ..utils.errors import CorrelationError, SessionClosedError, TransportError

logger = logging.getLogger(__name__)


class ByteStream(Protocol):
    """Bidirectional byte stream used by TransportSession."""

    def connect(self, host: str, port: int, timeout: float) -> None: ...

    def send(self, data: bytes) -> None: ...

    def recv(self, max_bytes: int) -> bytes | None:
        """Return data, None if nothing arrived within the poll interval, b"" on EOF."""
        ...

    def close(self) -> None: ...


class SocketStream:
    """ByteStream over a TCP socket."""

    def __init__(self, poll_s: float = cfg.RECV_POLL_S) -> None:
        self._poll_s = poll_s
        self._sock: socket.socket | None = None

    def connect(self, host: str, port: int, timeout: float) -> None:
        sock = socket.create_connection((host, int(port)), timeout=timeout)
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            # Not available on all platforms
            pass
        self._sock = sock

    def send(self, data: bytes) -> None:
        sock = self._sock
        if sock is None:
            raise BrokenPipeError("socket is closed")
        sock.sendall(data)

    def recv(self, max_bytes: int) -> bytes | None:
        sock = self._sock
        if sock is None:
            return b""
        try:
            readable, _, _ = select.select([sock], [], [], self._poll_s)
        except ValueError as e:
            # fd closed underneath us during disconnect
            raise OSError(str(e)) from e
        if not readable:
            return None
        return sock.recv(max_bytes)

    def close(self) -> None:
        sock = self._sock
        self._sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()


class SessionState(str, Enum):
    """Connection state of a TransportSession."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class TransportSession:
    """
    Manages the single connection to the robot.

    This class handles:
    - Connect/disconnect with an explicit state machine
    - Framing and writing requests (writes are serialized across caller threads)
    - A receive thread that reassembles frames, decodes responses and resolves them
    - Failing every outstanding request when the session is torn down

    Callbacks run on the receive thread (or on the calling thread for immediate
    failures) and must not block waiting on another response.
    """

    def __init__(
        self,
        stream_factory: Callable[[], ByteStream] | None = None,
        correlation: CorrelationTable | None = None,
        *,
        request_timeout: float = cfg.REQUEST_TIMEOUT_S,
        connect_timeout: float = cfg.CONNECT_TIMEOUT_S,
        recv_size: int = cfg.RECV_BUFFER_SIZE,
    ) -> None:
        self._stream_factory = stream_factory or SocketStream
        self.correlation = correlation if correlation is not None else CorrelationTable()
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self._recv_size = recv_size

        self.host: str | None = None
        self.port: int | None = None

        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._stream: ByteStream | None = None
        self._reader_thread: threading.Thread | None = None

        self._stats = {
            "frames_sent": 0,
            "frames_received": 0,
            "decode_errors": 0,
            "dropped_frames": 0,
        }

    # ---------- lifecycle ----------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stream(self) -> ByteStream | None:
        return self._stream

    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    def connect(self, host: str, port: int) -> bool:
        """
        Open the byte stream and start the receive thread.

        Returns True on success (or if already connected), False on failure or if
        another connect/disconnect is in progress.
        """
        with self._state_lock:
            if self._state == SessionState.CONNECTED:
                logger.debug(f"connect: already connected to {self.host}:{self.port}")
                return True
            if self._state != SessionState.DISCONNECTED:
                logger.warning(f"connect rejected: session is {self._state.value}")
                return False
            self._state = SessionState.CONNECTING

        stream = self._stream_factory()
        try:
            stream.connect(host, int(port), self.connect_timeout)
        except OSError as e:
            logger.error(f"Connection to {host}:{port} failed: {e}")
            self._abort_connect(stream)
            return False
        except Exception as e:
            logger.error(f"Unexpected error connecting to {host}:{port}: {e}")
            self._abort_connect(stream)
            return False

        with self._state_lock:
            aborted = self._state != SessionState.CONNECTING
            if not aborted:
                self.host = host
                self.port = int(port)
                self._stream = stream
                self._state = SessionState.CONNECTED
                thread = threading.Thread(
                    target=self._reader_loop, args=(stream,), name="robotserver-rx", daemon=True
                )
                self._reader_thread = thread
        if aborted:
            logger.warning(f"Connection to {host}:{port} abandoned: disconnect requested")
            stream.close()
            return False
        thread.start()
        logger.info(f"Connected to robot at {host}:{port}")
        return True

    def disconnect(self) -> None:
        """Close the stream and fail every outstanding request with SessionClosedError."""
        with self._state_lock:
            if self._state in (SessionState.DISCONNECTED, SessionState.DISCONNECTING):
                return
            self._state = SessionState.DISCONNECTING
            stream = self._stream
            thread = self._reader_thread
            self._stream = None
            self._reader_thread = None
        self._teardown(stream, thread, "session disconnected")
        logger.info(f"Disconnected from robot at {self.host}:{self.port}")

    def _abort_connect(self, stream: ByteStream) -> None:
        try:
            stream.close()
        except OSError:
            pass
        with self._state_lock:
            self._state = SessionState.DISCONNECTED

    def _connection_lost(self, stream: ByteStream, reason: str) -> None:
        """Tear down after a read/write failure, unless a teardown already happened."""
        with self._state_lock:
            if self._stream is not stream or self._state != SessionState.CONNECTED:
                return
            self._state = SessionState.DISCONNECTING
            thread = self._reader_thread
            self._stream = None
            self._reader_thread = None
        logger.warning(f"Connection to {self.host}:{self.port} lost: {reason}")
        self._teardown(stream, thread, reason)

    def _teardown(
        self, stream: ByteStream | None, thread: threading.Thread | None, reason: str
    ) -> None:
        if stream is not None:
            try:
                stream.close()
            except OSError as e:
                logger.debug(f"Error closing stream: {e}")
        # Join outside of lock; the receive thread may be the one tearing down
        if thread and thread is not threading.current_thread():
            thread.join(timeout=cfg.READER_JOIN_S)
        failed = self.correlation.fail_all(SessionClosedError(reason))
        if failed:
            logger.info(f"Failed {failed} outstanding request(s): {reason}")
        self.correlation.stop()
        with self._state_lock:
            self._state = SessionState.DISCONNECTED

    # ---------- send path ----------

    def send(self, request: Request, callback: Callback, timeout: float | None = None) -> int | None:
        """
        Send a request; callback(response, error) fires exactly once.

        timeout=None uses the session default; timeout=0 waits without a deadline.
        Returns the sequence number, or None if the request could not be registered
        (the callback has then already fired with the error).
        """
        if not request.kind.is_request:
            raise ValueError(f"{type(request).__name__} is not a sendable request")
        deadline = self.request_timeout if timeout is None else timeout

        error: BaseException | None = None
        try:
            body = wire.encode(request)
            if len(body) > wire.MAX_BODY_LEN:
                raise ValueError(f"body too large ({len(body)} bytes)")
            response_kind = registry.response_kind(request.kind)
        except (ValueError, TypeError, KeyError) as e:
            error = TransportError(f"cannot encode {request.kind.name}: {e}")

        if error is None:
            with self._state_lock:
                stream = self._stream
                if self._state != SessionState.CONNECTED or stream is None:
                    error = TransportError(f"not connected ({self._state.value})")
                else:
                    try:
                        seq = self.correlation.register(response_kind, deadline, callback)
                    except CorrelationError as e:
                        error = e
        if error is not None:
            logger.warning(f"Cannot send {request.kind.name}: {error}")
            self._notify(callback, error)
            return None

        frame = wire.pack_frame(seq, body)
        try:
            with self._write_lock:
                stream.send(frame)
                self._stats["frames_sent"] += 1
        except OSError as e:
            logger.error(f"Write failed for seq={seq} ({request.kind.name}): {e}")
            self.correlation.fail(seq, TransportError(f"write failed: {e}"))
            self._connection_lost(stream, f"write failed: {e}")
            return seq
        logger.log(cfg.TRACE, f"tx seq={seq} {request.kind.name} ({len(frame)} bytes)")
        return seq

    def request(self, request: Request, timeout: float | None = None) -> Future:
        """
        Send a request and return a Future for its response.

        The future is already running, so it cannot be cancelled locally; it
        completes with the response, or with TransportError / RequestTimeoutError /
        SessionClosedError.
        """
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def _complete(response: Response | None, error: BaseException | None) -> None:
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(response)

        self.send(request, _complete, timeout)
        return future

    @staticmethod
    def _notify(callback: Callback, error: BaseException) -> None:
        try:
            callback(None, error)
        except Exception:
            logger.exception("Request callback raised")

    # ---------- receive path ----------

    def _reader_loop(self, stream: ByteStream) -> None:
        decoder = wire.FrameDecoder()
        while self._stream is stream:
            try:
                data = stream.recv(self._recv_size)
            except OSError as e:
                if self._stream is stream:
                    logger.error(f"Read error: {e}")
                    self._connection_lost(stream, f"read failed: {e}")
                break
            except Exception:
                logger.exception("Receive loop unexpected exception")
                self._connection_lost(stream, "receive loop crashed")
                break

            if data is None:
                # Poll timeout; loop to re-check the session
                continue
            if not data:
                self._connection_lost(stream, "connection closed by peer")
                break

            for seq, body in decoder.feed(data):
                self._handle_frame(seq, body)
        logger.debug("Receive loop exited")

    def _handle_frame(self, seq: int, body: bytes) -> None:
        """Decode one frame and resolve the matching request; never raises."""
        self._stats["frames_received"] += 1
        type_code = wire.peek_type_code(body)
        expected = self.correlation.expected_kind(seq)

        if type_code is None:
            kind = expected
        else:
            kind = registry.kind_for_type_code(type_code)
            if kind is None:
                logger.warning(f"Dropping frame seq={seq}: unknown ASDU type {type_code}")
                self._stats["dropped_frames"] += 1
                return

        if expected is None or kind is None:
            logger.debug(f"Dropping frame seq={seq}: no pending request (late or unsolicited)")
            self._stats["dropped_frames"] += 1
            return
        if kind != expected:
            logger.warning(
                f"Dropping frame seq={seq}: got {kind.name}, pending request expects {expected.name}"
            )
            self._stats["dropped_frames"] += 1
            return

        ok, response = wire.decode(kind, body)
        if not ok or response is None:
            logger.warning(f"Dropping frame seq={seq}: failed to decode {kind.name}")
            self._stats["decode_errors"] += 1
            return

        envelope = Envelope(
            sequence=seq,
            type_code=type_code if type_code is not None else registry.type_code(kind),
            timestamp=wire.peek_timestamp(body),
            body=response,
        )
        logger.log(cfg.TRACE, f"rx {envelope}")
        self.correlation.resolve(envelope.sequence, envelope.body)

    # ---------- info ----------

    def get_stats(self) -> dict:
        """Return connection information and counters."""
        return {
            "host": self.host,
            "port": self.port,
            "state": self._state.value,
            **self._stats,
            "pending": len(self.correlation),
        }
