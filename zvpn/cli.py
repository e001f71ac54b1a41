import logging
import os
import shutil
from typing import Optional

import typer

from zvpn.errors import PreconditionError, UserInputError, ZvpnError
from zvpn.router import CommandRouter, validate_mode
from zvpn.selection.flow import SelectionFlow, ensure_config_directory
from zvpn.settings import Settings, load_settings
from zvpn.supervisor.process_supervisor import ProcessSupervisor

app = typer.Typer(add_completion=False)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
EXIT_FAILURE = 1
EXIT_USAGE = 2

logger = logging.getLogger("zvpn.cli")


def configure_logging(level_name: str) -> None:
    name = level_name.strip().upper()
    level = getattr(logging, name) if name in LOG_LEVELS else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])


def is_privileged() -> bool:
    return os.geteuid() == 0


def check_preconditions(settings: Settings) -> None:
    """Abort before any side effect unless running as root with openvpn on PATH."""
    if not is_privileged():
        raise PreconditionError(
            "This program must be run with sudo or as the root user.",
            error_code="PRE_NOT_PRIVILEGED",
        )
    if shutil.which(settings.openvpn_binary) is None:
        raise PreconditionError(
            "OpenVPN is not installed on your system. Please install it first.",
            error_code="PRE_CLIENT_MISSING",
        )


def _exit_code_for(exc: ZvpnError) -> int:
    if isinstance(exc, UserInputError) and exc.error_code == "INPUT_UNKNOWN_ARGUMENT":
        return EXIT_USAGE
    return EXIT_FAILURE


@app.command(context_settings={"ignore_unknown_options": True})
def main(
    mode: Optional[str] = typer.Argument(
        None,
        metavar="[--start|--stop|--status|--log]",
        help="Operation mode. Without one, pick a config interactively and start it.",
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        envvar="ZVPN_LOG_LEVEL",
        help="Diagnostic log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
):
    """Supervise a single detached OpenVPN client."""
    configure_logging(log_level)
    try:
        settings = load_settings()
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=EXIT_FAILURE)

    try:
        check_preconditions(settings)
        validate_mode(mode)
        created = ensure_config_directory(settings.config_dir, typer.confirm)
        if created:
            typer.echo(f"Configuration directory created: {settings.config_dir}")

        supervisor = ProcessSupervisor(settings)
        flow = SelectionFlow(supervisor)
        router = CommandRouter(supervisor, flow, settings.config_dir)
        router.dispatch(mode)
    except ZvpnError as exc:
        logger.debug("Operation failed: %s (%s)", exc.error_code, exc.error_class)
        typer.echo(str(exc))
        raise typer.Exit(code=_exit_code_for(exc))


if __name__ == "__main__":
    app()
