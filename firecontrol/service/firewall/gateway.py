"""
Firewall Gateway for firecontrol.

Thin async wrapper around firewalld's command-line tool:

- grant:  firewall-cmd --permanent --zone=<zone> --add-source=<source>, then reload
- revoke: firewall-cmd --permanent --zone=<zone> --remove-source=<source>, then reload
- list:   firewall-cmd --zone=<zone> --list-all

Inputs are validated here regardless of what callers did. Commands are
run as an argument vector, never through a shell.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..errors import ExternalToolFailure, InvalidArgument, SanitizationRejected
from .parser import ZoneSummary, parse_list_all

logger = logging.getLogger(__name__)

_SAFE_VALUE = re.compile(r"^[A-Za-z0-9.]+$")

# firewalld answers these on idempotent re-adds / removals of absent sources
ALREADY_PRESENT_CODES = ("ALREADY_ENABLED",)
ALREADY_ABSENT_CODES = ("NOT_ENABLED", "UNKNOWN_SOURCE")


def sanitize(value: Optional[str], field: str) -> str:
    """Return ``value`` unchanged if it is non-empty and only [A-Za-z0-9.]."""
    if value is None or value == "":
        raise InvalidArgument(field)
    if not _SAFE_VALUE.match(value):
        raise SanitizationRejected(field, value)
    return value


@dataclass
class CommandResult:
    """Outcome of one tool invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _diagnostic(result: CommandResult) -> str:
    return (result.stderr or result.stdout).strip()


class FirewallGateway:
    """
    Executes grant/revoke/list against firewalld.

    Invocations never overlap: a command that outlives ``timeout`` is
    reported as a failure but left running (it cannot be aborted
    safely), and the next invocation waits for it first.
    """

    def __init__(self, binary: str = "firewall-cmd", timeout: float = 5.0):
        self.binary = binary
        self.timeout = timeout
        self._straggler: Optional["asyncio.Future[tuple]"] = None

    async def grant(self, zone: str, address: str) -> None:
        await self._change_source("add", zone, address)

    async def revoke(self, zone: str, address: str) -> None:
        await self._change_source("remove", zone, address)

    async def reload(self) -> None:
        result = await self._run("--reload")
        if not result.ok:
            raise ExternalToolFailure(
                f"{self.binary} --reload", _diagnostic(result), result.returncode
            )

    async def list_zone(self, zone: str) -> ZoneSummary:
        zone = sanitize(zone, "zone")
        result = await self._run(f"--zone={zone}", "--list-all")
        if not result.ok:
            raise ExternalToolFailure(
                f"{self.binary} --zone={zone} --list-all",
                _diagnostic(result),
                result.returncode,
            )
        return parse_list_all(result.stdout)

    async def _change_source(self, action: str, zone: str, address: str) -> None:
        zone = sanitize(zone, "zone")
        address = sanitize(address, "source")
        args = ("--permanent", f"--zone={zone}", f"--{action}-source={address}")

        result = await self._run(*args)
        diagnostic = _diagnostic(result)

        if not result.ok:
            benign = ALREADY_PRESENT_CODES if action == "add" else ALREADY_ABSENT_CODES
            if any(code in diagnostic for code in benign):
                logger.info(f"{zone}.{address}: {diagnostic}")
            else:
                raise ExternalToolFailure(
                    " ".join((self.binary,) + args), diagnostic, result.returncode
                )
        elif result.stderr.strip():
            logger.warning(f"{self.binary} {action} {zone}.{address}: {result.stderr.strip()}")

        await self.reload()

    async def _run(self, *args: str) -> CommandResult:
        await self._settle_straggler()

        command = " ".join((self.binary,) + args)
        logger.debug(f"Running: {command}")

        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolFailure(command, str(e)) from e

        communicate = asyncio.ensure_future(proc.communicate())
        try:
            stdout_b, stderr_b = await asyncio.wait_for(
                asyncio.shield(communicate), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            self._straggler = communicate
            raise ExternalToolFailure(command, f"timed out after {self.timeout}s")

        return CommandResult(
            returncode=proc.returncode,
            stdout=(stdout_b or b"").decode("utf-8", errors="replace"),
            stderr=(stderr_b or b"").decode("utf-8", errors="replace"),
        )

    async def _settle_straggler(self) -> None:
        if self._straggler is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._straggler), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ExternalToolFailure(
                self.binary, "previous firewall command is still running"
            )
        except Exception as e:
            logger.warning(f"Previous timed-out firewall command failed: {e}")
        else:
            logger.info("Previous timed-out firewall command has finished")
        self._straggler = None
