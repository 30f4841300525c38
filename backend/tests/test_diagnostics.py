"""Tests for diagnostics — crash reports, structured logging, log dir resolution."""

import json
import logging
import os
import stat
import sys

import pytest

import diagnostics
from diagnostics import (
    MAX_CRASH_REPORTS,
    JSONFormatter,
    resolve_log_dir,
    setup_excepthook,
    setup_structured_logging,
    write_crash_report,
)

pytestmark = pytest.mark.smoke


@pytest.fixture
def app_dir(tmp_path, monkeypatch):
    """Point the app dir at a temp location."""
    monkeypatch.setattr(diagnostics, "APP_DIR", str(tmp_path))
    monkeypatch.delenv("FRAMEFX_LOG_DIR", raising=False)
    return tmp_path


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for h in root.handlers:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


def _raise_and_capture():
    try:
        raise RuntimeError(f"cannot open {os.path.expanduser('~')}/clips/a.mp4")
    except RuntimeError:
        return sys.exc_info()


def test_crash_report_fields(tmp_path):
    path = write_crash_report(*_raise_and_capture(), str(tmp_path))
    data = json.loads(open(path).read())
    assert data["exception_type"] == "RuntimeError"
    assert "traceback" in data
    assert data["platform"] == sys.platform


def test_crash_report_strips_home_path(tmp_path):
    path = write_crash_report(*_raise_and_capture(), str(tmp_path))
    text = open(path).read()
    assert os.path.expanduser("~") + "/clips" not in text
    assert "<HOME>" in text


def test_crash_report_permissions(tmp_path):
    path = write_crash_report(*_raise_and_capture(), str(tmp_path))
    mode = stat.S_IMODE(os.stat(path).st_mode)
    assert mode & 0o077 == 0


def test_old_crash_reports_pruned(tmp_path):
    for i in range(MAX_CRASH_REPORTS + 3):
        old = tmp_path / f"crash_old{i}.json"
        old.write_text("{}")
        os.utime(old, (1000 + i, 1000 + i))
    write_crash_report(*_raise_and_capture(), str(tmp_path))
    assert len(list(tmp_path.glob("crash_*.json"))) == MAX_CRASH_REPORTS


def test_excepthook_writes_report_and_chains(tmp_path, monkeypatch):
    chained = []
    monkeypatch.setattr(sys, "__excepthook__", lambda *a: chained.append(a[0]))
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    setup_excepthook(str(tmp_path))
    sys.excepthook(*_raise_and_capture())
    assert chained == [RuntimeError]
    assert len(list(tmp_path.glob("crash_*.json"))) == 1


def test_excepthook_survives_unwritable_dir(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "__excepthook__", lambda *a: None)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    blocker = tmp_path / "file"
    blocker.write_text("")
    setup_excepthook(str(blocker / "crash"))
    sys.excepthook(*_raise_and_capture())
    assert "could not write crash report" in capsys.readouterr().err


def test_resolve_log_dir_default(app_dir):
    assert resolve_log_dir("") == os.path.join(str(app_dir), "logs")


def test_resolve_log_dir_inside_app_dir_accepted(app_dir):
    inside = app_dir / "custom"
    assert resolve_log_dir(str(inside)) == os.path.realpath(inside)


def test_resolve_log_dir_outside_rejected(app_dir):
    assert resolve_log_dir("/tmp/elsewhere") == os.path.join(str(app_dir), "logs")


def test_resolve_log_dir_prefix_trick_rejected(app_dir):
    sibling = str(app_dir) + "-evil"
    assert resolve_log_dir(sibling) == os.path.join(str(app_dir), "logs")


def test_structured_logging_writes_json(app_dir, restore_root_logger, monkeypatch):
    monkeypatch.setenv("FRAMEFX_LOG_LEVEL", "debug")
    log_dir = setup_structured_logging()
    assert restore_root_logger.level == logging.DEBUG

    logging.getLogger("framefx.test").info("hello %s", "world")
    for h in restore_root_logger.handlers:
        h.flush()

    lines = open(os.path.join(log_dir, diagnostics.LOG_FILENAME)).read().splitlines()
    entry = json.loads(lines[-1])
    assert entry["message"] == "hello world"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "framefx.test"


def test_structured_logging_env_dir(app_dir, restore_root_logger, monkeypatch):
    target = app_dir / "envlogs"
    monkeypatch.setenv("FRAMEFX_LOG_DIR", str(target))
    assert setup_structured_logging() == os.path.realpath(target)
    assert target.is_dir()


def test_old_logs_cleaned(app_dir, restore_root_logger):
    log_dir = app_dir / "logs"
    log_dir.mkdir()
    stale = log_dir / f"{diagnostics.LOG_FILENAME}.3"
    stale.write_text("old")
    os.utime(stale, (1000, 1000))
    setup_structured_logging(str(log_dir))
    assert not stale.exists()


def test_json_formatter_includes_exception():
    try:
        raise KeyError("k")
    except KeyError:
        record = logging.LogRecord(
            "x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    entry = json.loads(JSONFormatter().format(record))
    assert entry["exception"]["type"] == "KeyError"
    assert "Traceback" in entry["exception"]["traceback"]
