import pytest

from robotserver.cli.main import build_parser, main


@pytest.fixture(autouse=True)
def fake_robot(monkeypatch):
    monkeypatch.setenv("ROBOTSERVER_FAKE_ROBOT", "1")


def test_parser_navigate_points():
    args = build_parser().parse_args(["navigate", "1,2,0,0.5", "3,4,0,1.0", "--map-id", "7"])
    assert args.command == "navigate"
    assert args.points == [(1.0, 2.0, 0.0, 0.5), (3.0, 4.0, 0.0, 1.0)]
    assert args.map_id == 7


def test_parser_rejects_bad_point():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["navigate", "1,2"])


def test_status_command(capsys):
    assert main(["status"]) == 0
    out = capsys.readouterr().out
    assert "electricity: 87" in out


def test_motion_command(capsys):
    assert main(["motion", "1", "0.5"]) == 0
    assert "value: 0.5" in capsys.readouterr().out


def test_navigate_command(capsys):
    assert main(["navigate", "1,0,0,0", "1,1,0,1.57", "--map-id", "2"]) == 0
    assert "value: 1" in capsys.readouterr().out


def test_task_status_command(capsys):
    assert main(["task-status"]) == 0
    assert "status: 0" in capsys.readouterr().out


def test_cancel_without_task_fails(capsys):
    assert main(["cancel"]) == 1
    assert "cancel failed" in capsys.readouterr().out


def test_connection_failure(monkeypatch, capsys):
    monkeypatch.delenv("ROBOTSERVER_FAKE_ROBOT")
    assert main(["--port", "1", "--timeout", "0.5", "status"]) == 1
    assert "could not connect" in capsys.readouterr().err
