"""
Async client quickstart for the RobotServer SDK.
- Runs against the in-process simulated robot, so no hardware is needed
- Shows telemetry, a motion command and a navigation task with cancel

Run from the repository root:
    python examples/async_client_quickstart.py
"""

import asyncio

from spatialmath import SE3

from robotserver import AsyncRobotServerClient, NavigationPoint

HOST = "127.0.0.1"
PORT = 30000


async def run_client() -> int:
    async with AsyncRobotServerClient(HOST, PORT, transport_type="mock") as client:
        status = await client.get_real_time_status()
        print("pose:\n", status.pose() if status else None)

        # Walk forward at 0.3 m/s, then stop
        print("forward ->", await client.motion_control(1, 0.3))
        print("stop ->", await client.motion_control(6, 0.0))

        goal = NavigationPoint.from_pose(SE3(2.0, 1.0, 0.0) * SE3.Rz(90, unit="deg"), value=1)
        print("start ->", await client.start_navigation_task([goal]))
        print("cancel ->", await client.cancel_navigation_task())
        print("task ->", await client.query_navigation_task_status())
        return 0


def main() -> None:
    raise SystemExit(asyncio.run(run_client()))


if __name__ == "__main__":
    main()
