"""
Sync client quickstart for the RobotServer SDK.
- Connects to a robot at 127.0.0.1:30000 (set ROBOTSERVER_FAKE_ROBOT=1 to use
  the in-process simulated robot instead)
- Reads telemetry, starts a two-point navigation task and polls it to completion

Run from the repository root:
    ROBOTSERVER_FAKE_ROBOT=1 python examples/sync_client_quickstart.py
"""

import time

from robotserver import ErrorCodeQueryStatus, NavigationPoint, RobotServerSdk, SdkOptions

HOST = "127.0.0.1"
PORT = 30000


def main() -> None:
    with RobotServerSdk(SdkOptions(request_timeout=2.0)) as sdk:
        if not sdk.connect(HOST, PORT):
            print(f"could not connect to {HOST}:{PORT}")
            raise SystemExit(1)
        print("sdk version:", sdk.get_version())

        status = sdk.get_real_time_status()
        if status is not None:
            print("position:", status.position, "battery:", status.electricity)

        path = [
            NavigationPoint(value=1, pos_x=1.0, pos_y=0.0),
            NavigationPoint(value=2, pos_x=1.0, pos_y=2.0, angle_yaw=1.57),
        ]
        result = sdk.start_navigation_task(path).result(timeout=3.0)
        print("start navigation:", result)

        while True:
            task = sdk.query_navigation_task_status()
            print("task status:", task)
            if task is None or task.error_code != ErrorCodeQueryStatus.EXECUTING:
                break
            time.sleep(0.5)
        code = 0 if task is not None else 1
    raise SystemExit(code)


if __name__ == "__main__":
    main()
