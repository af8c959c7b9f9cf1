"""
CLI entry point for the robotserver-cli command.

Connects to a robot (or the simulated robot when ROBOTSERVER_FAKE_ROBOT=1), runs
one command and prints the result.
"""

import argparse
import concurrent.futures
import logging
import sys
from dataclasses import asdict, is_dataclass

from .. import config as cfg
from ..client.sdk import RobotServerSdk, SdkOptions
from ..protocol.types import NavigationPoint
from ..utils.errors import RobotServerError

logger = logging.getLogger(__name__)


def _parse_point(text: str) -> tuple[float, float, float, float]:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"expected X,Y,Z,YAW, got {text!r}")
    try:
        x, y, z, yaw = (float(p) for p in parts)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid point {text!r}: {e}") from e
    return x, y, z, yaw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="robotserver-cli", description="RobotServer SDK client")
    parser.add_argument("--host", default=cfg.ROBOT_HOST, help="Robot host address")
    parser.add_argument("--port", type=int, default=cfg.ROBOT_PORT, help="Robot TCP port")
    parser.add_argument(
        "--timeout", type=float, default=cfg.REQUEST_TIMEOUT_S, help="Request timeout (s)"
    )

    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Enable quiet logging (ERROR level)")
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Print a real-time status snapshot")
    sub.add_parser("task-status", help="Print the navigation task status")
    sub.add_parser("cancel", help="Cancel the running navigation task")

    motion = sub.add_parser("motion", help="Send a motion control command")
    motion.add_argument("motion_command", type=int, metavar="COMMAND", help="Motion command id")
    motion.add_argument("value", type=float, metavar="VALUE", help="Velocity or gait id")

    navigate = sub.add_parser("navigate", help="Start a navigation task")
    navigate.add_argument("points", nargs="+", type=_parse_point, metavar="X,Y,Z,YAW")
    navigate.add_argument("--map-id", type=int, default=0, help="Map id for every point")
    return parser


def _log_level(args: argparse.Namespace) -> int:
    if args.log_level:
        return cfg.TRACE if args.log_level == "TRACE" else getattr(logging, args.log_level)
    if args.verbose >= 3 or cfg.TRACE_ENABLED:
        return cfg.TRACE
    if args.verbose >= 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    if args.quiet:
        return logging.ERROR
    return getattr(logging, cfg.LOG_LEVEL_DEFAULT, logging.WARNING)


def _print_result(result: object) -> None:
    if is_dataclass(result):
        for name, value in asdict(result).items():
            print(f"{name}: {value}")
    else:
        print(result)


def _run(sdk: RobotServerSdk, args: argparse.Namespace) -> int:
    if args.command == "status":
        result = sdk.get_real_time_status()
    elif args.command == "task-status":
        result = sdk.query_navigation_task_status()
    elif args.command == "cancel":
        ok = sdk.cancel_navigation_task()
        print("cancelled" if ok else "cancel failed")
        return 0 if ok else 1
    else:
        if args.command == "motion":
            future = sdk.motion_control(args.motion_command, args.value)
        else:
            points = [
                NavigationPoint(map_id=args.map_id, value=i, pos_x=x, pos_y=y, pos_z=z, angle_yaw=yaw)
                for i, (x, y, z, yaw) in enumerate(args.points)
            ]
            future = sdk.start_navigation_task(points)
        try:
            result = future.result(timeout=args.timeout + 1.0 if args.timeout > 0 else None)
        except (RobotServerError, concurrent.futures.TimeoutError) as e:
            logger.error(f"{args.command} failed: {e}")
            result = None
        if result is not None:
            _print_result(result)
            return 0 if result.succeeded else 1

    if result is None:
        return 1
    _print_result(result)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=_log_level(args),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    options = SdkOptions(request_timeout=args.timeout)
    with RobotServerSdk(options) as sdk:
        if not sdk.connect(args.host, args.port):
            print(f"could not connect to {args.host}:{args.port}", file=sys.stderr)
            return 1
        return _run(sdk, args)


if __name__ == "__main__":
    sys.exit(main())
