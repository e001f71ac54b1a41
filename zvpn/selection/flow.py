"""Interactive configuration selection in front of the process supervisor."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterator, Sequence

import typer

from zvpn.errors import IOFailureError, PreconditionError, UserInputError
from zvpn.supervisor.process_supervisor import ProcessSupervisor, StartResult

logger = logging.getLogger("zvpn.selection.flow")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def list_candidates(directory: Path, suffix: str = ".ovpn") -> Iterator[str]:
    """Yield config filenames in directory enumeration order (unsorted)."""
    for entry in directory.iterdir():
        if entry.name.endswith(suffix) and entry.is_file():
            yield entry.name


def parse_choice(raw: str, count: int) -> int:
    """Return the zero-based index for a 1-based menu answer."""
    match = _LEADING_INT.match(raw or "")
    if not match:
        raise UserInputError("Invalid choice", error_code="INPUT_INVALID_CHOICE")
    index = int(match.group(1))
    if index < 1 or index > count:
        raise UserInputError("Invalid choice", error_code="INPUT_INVALID_CHOICE")
    return index - 1


def ensure_config_directory(directory: Path, confirm: Callable[[str], bool]) -> bool:
    """Make sure directory exists, asking before creating it.

    Returns True when the directory was created.
    """
    if directory.exists():
        return False
    question = f"Configuration directory {directory} does not exist. Do you want to create it?"
    if not confirm(question):
        raise PreconditionError("Aborting.", error_code="PRE_CONFIG_DIR_DECLINED")
    try:
        directory.mkdir(mode=0o755)
    except OSError as exc:
        raise IOFailureError(
            f"Failed to create configuration directory: {exc}", error_code="IO_CONFIG_DIR"
        ) from exc
    logger.info("Created configuration directory %s", directory)
    return True


class SelectionFlow:
    def __init__(
        self,
        supervisor: ProcessSupervisor,
        *,
        echo: Callable[..., None] = typer.echo,
        read_line: Callable[[str], str] = input,
    ) -> None:
        self.supervisor = supervisor
        self.store = supervisor.store
        self.suffix = supervisor.settings.config_suffix
        self._echo = echo
        self._read_line = read_line

    def prompt_choice(self, candidates: Sequence[str]) -> str:
        self._echo("Select a configuration file to use:")
        for number, name in enumerate(candidates, start=1):
            self._echo(f"{number}. {name}")
        try:
            raw = self._read_line("Enter choice: ")
        except EOFError:
            raw = ""
        return candidates[parse_choice(raw, len(candidates))]

    def record_and_start(self, directory: Path, chosen_name: str) -> StartResult:
        """Persist chosen_name as last used, then start it.

        A failed marker write is reported and the start still goes ahead.
        """
        try:
            self.store.write_last_config(chosen_name)
        except IOFailureError as exc:
            logger.warning("Last used configuration not saved: %s", exc)
            self._echo(str(exc), err=True)
        return self.supervisor.start(directory / chosen_name)

    def interactive_start(self, directory: Path) -> StartResult:
        try:
            candidates = list(list_candidates(directory, self.suffix))
        except OSError as exc:
            raise IOFailureError(
                f"Failed to read configuration directory: {exc}", error_code="IO_CONFIG_DIR"
            ) from exc
        if not candidates:
            raise UserInputError(
                f"No valid ovpn config files found in {directory}",
                error_code="INPUT_NO_CANDIDATES",
            )
        chosen = self.prompt_choice(candidates)
        return self.record_and_start(directory, chosen)

    def start_last_used(self, directory: Path) -> StartResult:
        name = self.store.read_last_config()
        if name is None:
            raise UserInputError(
                "No previously used configuration found. Run zvpn without arguments to pick one.",
                error_code="INPUT_NO_LAST_CONFIG",
            )
        return self.supervisor.start(directory / name)
