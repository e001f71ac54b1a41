"""Deterministic zvpn exception hierarchy."""


class ZvpnError(Exception):
    """Base error carrying stable taxonomy class/code fields."""

    error_class = "zvpn"

    def __init__(self, message: str, *, error_code: str):
        super().__init__(message)
        self.error_code = error_code


class PreconditionError(ZvpnError):
    """Entry precondition not met (privilege, client binary, config dir)."""

    error_class = "precondition"


class UserInputError(ZvpnError):
    """Operator input could not be used; nothing was changed."""

    error_class = "user_input"


class StateCorruptionError(ZvpnError):
    """Persisted pid record exists but cannot be interpreted."""

    error_class = "state_corruption"

    def __init__(self, message: str = "Invalid PID in PID file."):
        super().__init__(message, error_code="STATE_INVALID_PID_RECORD")


class ExternalFailureError(ZvpnError):
    """Spawn, termination request or liveness probe failed."""

    error_class = "external_failure"


class IOFailureError(ZvpnError):
    """Reading or writing one of the tool's files failed."""

    error_class = "io_failure"
