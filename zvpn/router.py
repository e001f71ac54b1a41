"""Deterministic command router for zvpn operation modes."""

import logging
from pathlib import Path
from typing import Callable, Optional

import typer

from zvpn.errors import UserInputError
from zvpn.selection.flow import SelectionFlow
from zvpn.supervisor.process_supervisor import (
    ProcessState,
    ProcessSupervisor,
    StartResult,
    StatusReport,
    StopMethod,
    StopOutcome,
    StopResult,
)

logger = logging.getLogger("zvpn.router")

MODES = ("--start", "--stop", "--status", "--log")
UNKNOWN_ARGUMENT_MESSAGE = "Unknown argument. Use --start, --stop, --status, or --log."


def validate_mode(mode: Optional[str]) -> None:
    if mode is not None and mode not in MODES:
        raise UserInputError(UNKNOWN_ARGUMENT_MESSAGE, error_code="INPUT_UNKNOWN_ARGUMENT")


def format_stop(result: StopResult) -> list[str]:
    if result.method is StopMethod.PROCESS_GROUP:
        if result.outcome is StopOutcome.NOT_RUNNING:
            return [f"VPN process {result.target} was not running. Removed stale PID file."]
        lines = ["VPN service stopped."]
        if result.exited is False:
            lines.append(f"Warning: VPN process {result.target} has not exited yet.")
        return lines
    if result.outcome is StopOutcome.NOT_RUNNING:
        return [f"No running {result.target} process found."]
    return ["VPN service stopped."]


def format_start(result: StartResult) -> list[str]:
    lines = format_stop(result.preempted) if result.preempted is not None else []
    lines.append(f"VPN started with configuration: {result.tracked.started_from}")
    return lines


def format_status(report: StatusReport) -> list[str]:
    if report.state is ProcessState.RUNNING and report.tracked is not None:
        detail = f"PID {report.tracked.pid}"
        if report.tracked.started_from is not None:
            detail += f", config {report.tracked.started_from}"
        return [f"VPN service is running ({detail})."]
    return ["VPN service is not running."]


class CommandRouter:
    """
    Maps a CLI mode to supervisor and selection calls and prints the outcome.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        flow: SelectionFlow,
        config_dir: Path,
        *,
        echo: Callable[..., None] = typer.echo,
    ):
        self._supervisor = supervisor
        self._flow = flow
        self._config_dir = config_dir
        self._echo = echo

    def dispatch(self, mode: Optional[str]) -> None:
        """
        Run one operation mode. None means interactive start.

        Raises:
            UserInputError for an unknown mode (nothing is touched)
            ZvpnError subclasses from the operation itself
        """
        validate_mode(mode)

        logger.info("Dispatching mode: %s", mode or "interactive")

        if mode is None:
            self._preempt()
            self._emit(format_start(self._flow.interactive_start(self._config_dir)))

        elif mode == "--start":
            self._preempt()
            self._emit(format_start(self._flow.start_last_used(self._config_dir)))

        elif mode == "--stop":
            self._emit(format_stop(self._supervisor.stop()))

        elif mode == "--status":
            self._emit(format_status(self._supervisor.status()))

        elif mode == "--log":
            data = self._supervisor.log()
            self._echo("VPN Logs:")
            self._echo(data.decode("utf-8", errors="replace"))

    def _preempt(self) -> None:
        if not self._supervisor.store.has_pid_record():
            return
        self._echo("An active VPN connection is detected. Stopping it before starting a new one.")
        result = self._supervisor.stop_if_running()
        if result is not None:
            self._emit(format_stop(result))

    def _emit(self, lines: list[str]) -> None:
        for line in lines:
            self._echo(line)
