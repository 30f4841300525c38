"""Diagnostics — structured logging, faulthandler, crash dumps.

All artifacts live under ~/.framefx:
    logs/framefx.log         rotating JSON log
    logs/framefx_fault.log   faulthandler output (separate fd, never rotated)
    crash_reports/           PII-stripped JSON dumps of unhandled exceptions
"""

import datetime
import faulthandler
import json
import logging
import logging.handlers
import os
import sys
import traceback
from pathlib import Path

from security import strip_pii

logger = logging.getLogger(__name__)

APP_DIR = os.path.expanduser("~/.framefx")
LOG_FILENAME = "framefx.log"

MAX_CRASH_REPORTS = 5
MAX_LOG_AGE_DAYS = 7


def resolve_log_dir(env_dir: str) -> str:
    """Return FRAMEFX_LOG_DIR if it stays under ~/.framefx, else the default."""
    default = os.path.join(APP_DIR, "logs")
    if not env_dir:
        return default
    resolved = os.path.realpath(env_dir)
    allowed = os.path.realpath(APP_DIR)
    if resolved != allowed and not resolved.startswith(allowed + os.sep):
        logger.warning("FRAMEFX_LOG_DIR outside %s, using default", allowed)
        return default
    return resolved


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry)


def _prune(paths: list[Path], keep: int):
    for old in sorted(paths, key=lambda f: f.stat().st_mtime, reverse=True)[keep:]:
        old.unlink(missing_ok=True)


def _cleanup_old_logs(log_dir: str):
    cutoff = datetime.datetime.now() - datetime.timedelta(days=MAX_LOG_AGE_DAYS)
    try:
        for f in Path(log_dir).glob(f"{LOG_FILENAME}*"):
            if f.stat().st_mtime < cutoff.timestamp():
                f.unlink(missing_ok=True)
    except OSError as e:
        logger.debug("Log cleanup skipped: %s", e)


def setup_structured_logging(log_dir: str | None = None) -> str:
    """Attach a rotating JSON handler to the root logger. Returns the log dir."""
    resolved_dir = resolve_log_dir(log_dir or os.environ.get("FRAMEFX_LOG_DIR", ""))
    os.makedirs(resolved_dir, mode=0o700, exist_ok=True)

    level_name = os.environ.get("FRAMEFX_LOG_LEVEL", "INFO").upper()

    handler = logging.handlers.RotatingFileHandler(
        os.path.join(resolved_dir, LOG_FILENAME),
        maxBytes=10_000_000,
        backupCount=7,
    )
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    _cleanup_old_logs(resolved_dir)
    return resolved_dir


def setup_faulthandler(log_dir: str):
    """Route C-level crash tracebacks to their own file."""
    fault_path = os.path.join(log_dir, "framefx_fault.log")
    try:
        fault_file = open(fault_path, "a", buffering=1)  # noqa: SIM115
        os.chmod(fault_path, 0o600)
        faulthandler.enable(file=fault_file, all_threads=True)
    except OSError as e:
        logger.warning("Could not enable faulthandler: %s", e)


def write_crash_report(exc_type, exc_value, exc_tb, crash_dir: str) -> str:
    """Write a PII-stripped crash dump and prune old ones. Returns its path."""
    os.makedirs(crash_dir, mode=0o700, exist_ok=True)
    timestamp = datetime.datetime.now(tz=datetime.timezone.utc).strftime(
        "%Y%m%dT%H%M%S%fZ"
    )
    crash_path = os.path.join(crash_dir, f"crash_{timestamp}.json")

    crash_data = {
        "timestamp": timestamp,
        "exception_type": exc_type.__name__ if exc_type else "Unknown",
        "exception_message": str(exc_value),
        "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
        "python_version": sys.version,
        "platform": sys.platform,
    }
    crash_data = strip_pii({"extra": crash_data}, {}).get("extra", crash_data)

    old_umask = os.umask(0o077)
    try:
        with open(crash_path, "w") as f:
            json.dump(crash_data, f, indent=2)
    finally:
        os.umask(old_umask)

    _prune(list(Path(crash_dir).glob("crash_*.json")), MAX_CRASH_REPORTS)
    return crash_path


def setup_excepthook(crash_dir: str | None = None):
    """Install sys.excepthook that writes structured crash dumps."""
    target_dir = crash_dir or os.path.join(APP_DIR, "crash_reports")

    def _crash_excepthook(exc_type, exc_value, exc_tb):
        try:
            write_crash_report(exc_type, exc_value, exc_tb, target_dir)
        except OSError as e:
            print(f"WARNING: could not write crash report: {e}", file=sys.stderr)
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _crash_excepthook


def init_diagnostics():
    """Initialize all diagnostic layers. Call from main.py."""
    log_dir = setup_structured_logging()
    setup_faulthandler(log_dir)
    setup_excepthook()
    logger.info("Diagnostics initialized: logging=%s, faulthandler=enabled", log_dir)
