"""
Error types for the firecontrol core.

Invalid input is rejected before any firewall call is attempted.
Tool and persistence failures carry the raw diagnostic so it can be
returned to the caller or logged as-is.
"""

from typing import Optional


class FirecontrolError(Exception):
    """Base class for all firecontrol errors."""


class InvalidArgument(FirecontrolError):
    """A zone or source was missing or empty."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} not provided.")


class SanitizationRejected(InvalidArgument):
    """A zone or source contained characters outside [A-Za-z0-9.]."""

    def __init__(self, field: str, value: str):
        self.value = value
        super().__init__(field, f"{field} contains invalid characters: {value!r}")


class ExternalToolFailure(FirecontrolError):
    """
    The firewall tool exited non-zero, timed out, or could not be started.
    """

    def __init__(
        self,
        command: str,
        diagnostic: str,
        returncode: Optional[int] = None,
    ):
        self.command = command
        self.diagnostic = diagnostic
        self.returncode = returncode
        super().__init__(diagnostic or f"{command} failed (exit {returncode})")


class PersistenceFailure(FirecontrolError):
    """Reading or writing the allowlist record failed."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Persistence failure on {path}: {detail}")


__all__ = [
    "FirecontrolError",
    "InvalidArgument",
    "SanitizationRejected",
    "ExternalToolFailure",
    "PersistenceFailure",
]
