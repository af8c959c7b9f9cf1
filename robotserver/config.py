"""
Central configuration for RobotServer SDK tunables and shared constants.
"""

import logging
import os

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]


logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


# Force TRACE logging in entry points that honour it
TRACE_ENABLED: bool = _env_bool("ROBOTSERVER_TRACE", False)

# Robot endpoint defaults (overridable by env/CLI)
ROBOT_HOST: str = os.getenv("ROBOTSERVER_HOST", "127.0.0.1")
ROBOT_PORT: int = _env_int("ROBOTSERVER_PORT", 30000)
LOG_LEVEL_DEFAULT: str = os.getenv("ROBOTSERVER_LOG_LEVEL", "WARNING").upper()

# Request/connection timeouts (seconds)
REQUEST_TIMEOUT_S: float = _env_float("ROBOTSERVER_REQUEST_TIMEOUT_S", 5.0)
CONNECT_TIMEOUT_S: float = _env_float("ROBOTSERVER_CONNECT_TIMEOUT_S", 3.0)

# Granularity of the correlation timeout sweep (seconds)
TIMEOUT_TICK_S: float = max(0.001, _env_float("ROBOTSERVER_TIMEOUT_TICK_S", 0.05))

# Receive loop: bytes per read and socket poll interval (seconds)
RECV_BUFFER_SIZE: int = max(256, _env_int("ROBOTSERVER_RECV_BUFFER", 4096))
RECV_POLL_S: float = 0.1

# Join bound for the receive thread on disconnect (seconds)
READER_JOIN_S: float = 1.0

