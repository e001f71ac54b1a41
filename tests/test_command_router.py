"""Tests for mode dispatch and rendered operator messages."""

import tempfile
import unittest
from pathlib import Path

from zvpn.errors import StateCorruptionError, UserInputError
from zvpn.router import CommandRouter, format_stop
from zvpn.supervisor.process_supervisor import (
    ProcessState,
    StartResult,
    StatusReport,
    StopMethod,
    StopOutcome,
    StopResult,
)
from zvpn.supervisor.state_store import StateStore, TrackedProcess


class _FakeSupervisor:
    def __init__(self, store: StateStore) -> None:
        self.store = store
        self.calls: list[str] = []
        self.status_report = StatusReport(state=ProcessState.NOT_RUNNING)
        self.log_bytes = b"line one\n"

    def stop(self) -> StopResult:
        self.calls.append("stop")
        self.store.remove_pid_record()
        return StopResult(method=StopMethod.PROCESS_GROUP, target="10", outcome=StopOutcome.STOPPED, record_removed=True, exited=True)

    def stop_if_running(self):
        self.calls.append("stop_if_running")
        if not self.store.has_pid_record():
            return None
        return self.stop()

    def status(self) -> StatusReport:
        self.calls.append("status")
        if isinstance(self.status_report, Exception):
            raise self.status_report
        return self.status_report

    def log(self) -> bytes:
        self.calls.append("log")
        return self.log_bytes


class _FakeFlow:
    def __init__(self, calls: list[str]) -> None:
        self.calls = calls

    def interactive_start(self, directory: Path) -> StartResult:
        self.calls.append("interactive_start")
        return StartResult(tracked=TrackedProcess(pid=11, started_from=directory / "a.ovpn"))

    def start_last_used(self, directory: Path) -> StartResult:
        self.calls.append("start_last_used")
        return StartResult(tracked=TrackedProcess(pid=12, started_from=directory / "b.ovpn"))


class CommandRouterTests(unittest.TestCase):
    """Validate that each mode reaches exactly the expected operations."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = StateStore(
            pid_file=self.root / "zvpn.pid",
            log_file=self.root / "zvpn.log",
            last_config_file=self.root / ".last_config",
        )
        self.supervisor = _FakeSupervisor(self.store)
        self.flow = _FakeFlow(self.supervisor.calls)
        self.output: list[str] = []
        self.router = CommandRouter(
            self.supervisor,
            self.flow,
            self.root,
            echo=lambda message="", **kwargs: self.output.append(message),
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_no_mode_runs_interactive_start(self) -> None:
        self.router.dispatch(None)
        self.assertEqual(self.supervisor.calls, ["interactive_start"])
        self.assertEqual(self.output, [f"VPN started with configuration: {self.root / 'a.ovpn'}"])

    def test_start_with_record_stops_first(self) -> None:
        self.store.pid_file.write_text("10\n")
        self.router.dispatch("--start")
        self.assertEqual(self.supervisor.calls, ["stop_if_running", "stop", "start_last_used"])
        self.assertEqual(
            self.output[0],
            "An active VPN connection is detected. Stopping it before starting a new one.",
        )
        self.assertIn("VPN service stopped.", self.output)

    def test_stop_status_log(self) -> None:
        self.router.dispatch("--stop")
        self.router.dispatch("--status")
        self.router.dispatch("--log")
        self.assertEqual(self.supervisor.calls, ["stop", "status", "log"])
        self.assertEqual(
            self.output,
            ["VPN service stopped.", "VPN service is not running.", "VPN Logs:", "line one\n"],
        )

    def test_status_running_includes_pid_and_config(self) -> None:
        self.supervisor.status_report = StatusReport(
            state=ProcessState.RUNNING,
            tracked=TrackedProcess(pid=55, started_from=Path("/etc/zvpn/a.ovpn")),
        )
        self.router.dispatch("--status")
        self.assertEqual(self.output, ["VPN service is running (PID 55, config /etc/zvpn/a.ovpn)."])

    def test_status_corruption_propagates(self) -> None:
        self.supervisor.status_report = StateCorruptionError()
        with self.assertRaises(StateCorruptionError):
            self.router.dispatch("--status")

    def test_unknown_argument_has_no_side_effects(self) -> None:
        self.store.pid_file.write_text("10\n")
        with self.assertRaises(UserInputError) as cm:
            self.router.dispatch("--restart")
        self.assertEqual(cm.exception.error_code, "INPUT_UNKNOWN_ARGUMENT")
        self.assertEqual(self.supervisor.calls, [])
        self.assertTrue(self.store.pid_file.exists())

    def test_format_stop_by_name_nothing_matched(self) -> None:
        lines = format_stop(StopResult(method=StopMethod.NAME, target="openvpn", outcome=StopOutcome.NOT_RUNNING, record_removed=False))
        self.assertEqual(lines, ["No running openvpn process found."])

    def test_format_stop_still_exiting_warns(self) -> None:
        lines = format_stop(
            StopResult(method=StopMethod.PROCESS_GROUP, target="9", outcome=StopOutcome.STOPPED, record_removed=True, exited=False)
        )
        self.assertEqual(lines[-1], "Warning: VPN process 9 has not exited yet.")


if __name__ == "__main__":
    unittest.main()
