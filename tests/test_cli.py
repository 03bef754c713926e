from __future__ import annotations

import json

import pytest

from tubely import cli
from tests.support import FakeRunner


def test_probe_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["probe", "--file", str(tmp_path / "missing.mp4")])
    assert excinfo.value.code == 2


def test_probe_prints_orientation(tmp_path, monkeypatch, capsys):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    runner = FakeRunner()
    runner.width, runner.height = 1080, 1920
    monkeypatch.setattr(cli, "SubprocessRunner", lambda: runner)
    cli.main(["probe", "--file", str(media)])
    printed = json.loads(capsys.readouterr().out)
    assert printed["orientation"] == "portrait"
    assert (printed["width"], printed["height"]) == (1080, 1920)


def test_probe_failure_exit_code(tmp_path, monkeypatch):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    runner = FakeRunner()
    runner.probe_returncode = 1
    monkeypatch.setattr(cli, "SubprocessRunner", lambda: runner)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["probe", "--file", str(media)])
    assert excinfo.value.code == 3


def test_faststart_moves_output(tmp_path, monkeypatch):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    target = tmp_path / "out" / "fast.mp4"
    target.parent.mkdir()
    runner = FakeRunner()
    monkeypatch.setattr(cli, "SubprocessRunner", lambda: runner)
    cli.main(["faststart", "--file", str(media), "--output", str(target)])
    assert target.read_bytes() == runner.remux_payload


def test_check_reports_missing_tools(monkeypatch):
    monkeypatch.setattr(cli, "binary_available", lambda binary: False)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--check"])
    assert excinfo.value.code == 1


def test_check_passes_when_tools_present(monkeypatch):
    monkeypatch.setattr(cli, "binary_available", lambda binary: True)
    cli.main(["--check"])


def test_no_command_prints_help():
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 1
