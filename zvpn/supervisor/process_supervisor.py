"""Lifecycle supervision for the single detached OpenVPN client."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from zvpn.errors import ExternalFailureError, IOFailureError, StateCorruptionError
from zvpn.settings import Settings
from zvpn.supervisor.state_store import StateStore, TrackedProcess

logger = logging.getLogger("zvpn.supervisor.process_supervisor")

STOP_POLL_INTERVAL_SECONDS = 0.1
PKILL_NO_MATCH = 1


class ProcessState(str, Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"


class StopMethod(str, Enum):
    PROCESS_GROUP = "process_group"
    NAME = "name"


class StopOutcome(str, Enum):
    STOPPED = "stopped"
    NOT_RUNNING = "not_running"


@dataclass(frozen=True)
class StatusReport:
    state: ProcessState
    tracked: Optional[TrackedProcess] = None


@dataclass(frozen=True)
class StopResult:
    method: StopMethod
    target: str
    outcome: StopOutcome
    record_removed: bool
    exited: Optional[bool] = None


@dataclass(frozen=True)
class StartResult:
    tracked: TrackedProcess
    preempted: Optional[StopResult] = None


def pid_exists(pid: int) -> bool:
    """Check whether pid exists in the current process table."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except (ProcessLookupError, OverflowError):
        # OverflowError: pid outside the platform's pid_t range.
        return False
    except PermissionError:
        # Exists, owned by someone we may not signal.
        return True
    except OSError as exc:
        raise ExternalFailureError(
            f"Failed to probe process {pid}: {exc}", error_code="EXT_PROBE_FAILED"
        ) from exc
    return True


class ProcessSupervisor:
    """Start, stop and inspect the one OpenVPN client tracked by the pid record."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: StateStore | None = None,
        spawn_fn: Callable[..., Any] = subprocess.Popen,
        killpg_fn: Callable[[int, int], None] = os.killpg,
        run_fn: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        probe_fn: Callable[[int], bool] = pid_exists,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.store = store or StateStore(
            pid_file=settings.pid_file,
            log_file=settings.log_file,
            last_config_file=settings.last_config_path,
        )
        self._spawn_fn = spawn_fn
        self._killpg_fn = killpg_fn
        self._run_fn = run_fn
        self._probe_fn = probe_fn
        self._sleep_fn = sleep_fn

    def start(self, config_path: Path) -> StartResult:
        """Stop any tracked client, then spawn a detached one for config_path.

        The config path is passed through unchecked; openvpn reports a bad
        path into the log.
        """
        preempted = self.stop_if_running()

        argv = [self.settings.openvpn_binary, "--config", str(config_path)]
        log_handle = self.store.open_log_for_append()
        try:
            banner = (
                f"--- zvpn {datetime.now(timezone.utc).isoformat()} "
                f"starting {' '.join(argv)} ---\n"
            )
            try:
                log_handle.write(banner.encode("utf-8"))
                log_handle.flush()
            except OSError as exc:
                raise IOFailureError(
                    f"Failed to write log file: {exc}", error_code="IO_LOG_WRITE"
                ) from exc

            logger.info("Spawning %s", argv)
            try:
                process = self._spawn_fn(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=log_handle,
                    start_new_session=True,
                )
            except OSError as exc:
                raise ExternalFailureError(
                    f"Failed to start service: {exc}", error_code="EXT_SPAWN_FAILED"
                ) from exc
        finally:
            log_handle.close()

        tracked = TrackedProcess(pid=process.pid, started_from=Path(config_path))
        # A failed write leaves the client running untracked; nothing is rolled back.
        self.store.write_pid_record(tracked)
        logger.info("OpenVPN started with pid %s", tracked.pid)
        return StartResult(tracked=tracked, preempted=preempted)

    def stop_if_running(self) -> StopResult | None:
        """Stop when a pid record is present; presence alone is trusted."""
        if not self.store.has_pid_record():
            return None
        logger.info("Pid record %s present; stopping before start", self.store.pid_file)
        return self.stop()

    def stop(self) -> StopResult:
        """Terminate the tracked client, or every same-named client without a usable record.

        The pid record is removed only after the termination request succeeded
        or the target was confirmed absent; on failure it is kept.
        """
        tracked = None
        try:
            tracked = self.store.read_pid_record()
        except StateCorruptionError:
            logger.warning("Pid record %s is corrupt; falling back to stop by name", self.store.pid_file)

        if tracked is not None and self.settings.stop_scope == "tracked":
            return self._stop_process_group(tracked)
        return self._stop_by_name()

    def _stop_process_group(self, tracked: TrackedProcess) -> StopResult:
        pid = tracked.pid
        logger.info("Sending SIGTERM to process group %s", pid)
        try:
            self._killpg_fn(pid, signal.SIGTERM)
        except (ProcessLookupError, OverflowError):
            logger.info("Process group %s no longer exists", pid)
            removed = self.store.remove_pid_record()
            return StopResult(
                method=StopMethod.PROCESS_GROUP,
                target=str(pid),
                outcome=StopOutcome.NOT_RUNNING,
                record_removed=removed,
            )
        except OSError as exc:
            raise ExternalFailureError(
                f"Failed to stop the VPN service: {exc}", error_code="EXT_TERMINATE_FAILED"
            ) from exc

        exited = self._wait_for_exit(pid)
        if not exited:
            logger.warning("Process %s still alive %.1fs after SIGTERM", pid, self.settings.stop_timeout)
        removed = self.store.remove_pid_record()
        return StopResult(
            method=StopMethod.PROCESS_GROUP,
            target=str(pid),
            outcome=StopOutcome.STOPPED,
            record_removed=removed,
            exited=exited,
        )

    def _stop_by_name(self) -> StopResult:
        name = Path(self.settings.openvpn_binary).name
        argv = ["pkill", "-x", name]
        logger.info("Running %s", argv)
        try:
            completed = self._run_fn(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise ExternalFailureError(
                f"Failed to stop the VPN service: {exc}", error_code="EXT_TERMINATE_FAILED"
            ) from exc

        if completed.returncode == 0:
            outcome = StopOutcome.STOPPED
        elif completed.returncode == PKILL_NO_MATCH:
            outcome = StopOutcome.NOT_RUNNING
        else:
            detail = (completed.stderr or "").strip() or "no output"
            raise ExternalFailureError(
                f"Failed to stop the VPN service: pkill exited with status {completed.returncode} ({detail})",
                error_code="EXT_TERMINATE_FAILED",
            )
        removed = self.store.remove_pid_record()
        return StopResult(method=StopMethod.NAME, target=name, outcome=outcome, record_removed=removed)

    def _wait_for_exit(self, pid: int) -> bool:
        attempts = int(self.settings.stop_timeout / STOP_POLL_INTERVAL_SECONDS)
        try:
            for _ in range(attempts):
                if not self._probe_fn(pid):
                    return True
                self._sleep_fn(STOP_POLL_INTERVAL_SECONDS)
            return not self._probe_fn(pid)
        except ExternalFailureError as exc:
            logger.warning("Could not confirm exit of %s: %s", pid, exc)
            return False

    def status(self) -> StatusReport:
        """Report liveness of the tracked pid. Never modifies the record."""
        tracked = self.store.read_pid_record()
        if tracked is None:
            return StatusReport(state=ProcessState.NOT_RUNNING)
        if self._probe_fn(tracked.pid):
            return StatusReport(state=ProcessState.RUNNING, tracked=tracked)
        return StatusReport(state=ProcessState.NOT_RUNNING, tracked=tracked)

    def log(self) -> bytes:
        return self.store.read_log()
