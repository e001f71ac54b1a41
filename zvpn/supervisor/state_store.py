"""Filesystem-backed state: pid record, last used config marker and log sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from zvpn.errors import IOFailureError, StateCorruptionError

logger = logging.getLogger("zvpn.supervisor.state_store")

MAX_PID = 2**31 - 1


@dataclass(frozen=True)
class TrackedProcess:
    pid: int
    started_from: Optional[Path] = None


def parse_pid_record(text: str) -> TrackedProcess:
    """Parse pid record text: pid on the first line, config path on the second.

    Raises StateCorruptionError unless the first line is a positive integer.
    """
    lines = text.strip().splitlines()
    if not lines:
        raise StateCorruptionError()
    first = lines[0].strip()
    # int() alone would also take "1_000", "+5" and non-ASCII digits.
    if not (first.isascii() and first.isdigit()):
        raise StateCorruptionError()
    pid = int(first)
    # pid 0 addresses the caller's own process group; values past a C int
    # overflow os.kill.
    if pid <= 0 or pid > MAX_PID:
        raise StateCorruptionError()
    started_from = None
    if len(lines) > 1 and lines[1].strip():
        started_from = Path(lines[1].strip())
    return TrackedProcess(pid=pid, started_from=started_from)


class StateStore:
    """Plain files on the host; no locking, last writer wins."""

    def __init__(self, *, pid_file: Path, log_file: Path, last_config_file: Path) -> None:
        self.pid_file = pid_file
        self.log_file = log_file
        self.last_config_file = last_config_file

    # pid record

    def has_pid_record(self) -> bool:
        return self.pid_file.exists()

    def read_pid_record(self) -> TrackedProcess | None:
        """Return the tracked process, or None when no record exists."""
        try:
            text = self.pid_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            raise StateCorruptionError() from None
        except OSError as exc:
            raise IOFailureError(f"Failed to read PID file: {exc}", error_code="IO_PID_READ") from exc
        return parse_pid_record(text)

    def write_pid_record(self, tracked: TrackedProcess) -> None:
        payload = f"{tracked.pid}\n"
        if tracked.started_from is not None:
            payload += f"{tracked.started_from}\n"
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            self.pid_file.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise IOFailureError(f"Failed to save PID: {exc}", error_code="IO_PID_WRITE") from exc
        logger.debug("Wrote pid record %s for pid %s", self.pid_file, tracked.pid)

    def remove_pid_record(self) -> bool:
        """Delete the record; returns False when there was nothing to delete."""
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise IOFailureError(f"Failed to remove PID file: {exc}", error_code="IO_PID_REMOVE") from exc
        logger.debug("Removed pid record %s", self.pid_file)
        return True

    # last used configuration

    def read_last_config(self) -> str | None:
        try:
            name = self.last_config_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise IOFailureError(
                f"Failed to read last used configuration: {exc}",
                error_code="IO_LAST_CONFIG_READ",
            ) from exc
        return name or None

    def write_last_config(self, name: str) -> None:
        try:
            self.last_config_file.write_text(name, encoding="utf-8")
        except OSError as exc:
            raise IOFailureError(
                f"Failed to save last used configuration: {exc}",
                error_code="IO_LAST_CONFIG_WRITE",
            ) from exc

    # log sink

    def open_log_for_append(self) -> BinaryIO:
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            return open(self.log_file, "ab")
        except OSError as exc:
            raise IOFailureError(f"Failed to open log file: {exc}", error_code="IO_LOG_OPEN") from exc

    def read_log(self) -> bytes:
        try:
            return self.log_file.read_bytes()
        except OSError as exc:
            raise IOFailureError(f"Failed to read log file: {exc}", error_code="IO_LOG_READ") from exc
