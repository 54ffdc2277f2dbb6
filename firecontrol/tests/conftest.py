"""
Shared fixtures for firecontrol tests.

ScriptedGateway keeps the real FirewallGateway logic (validation,
benign-error handling, reload sequencing) and only replaces the raw
command runner, so no firewall-cmd is needed.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Tuple

import pytest

from firecontrol.service.allowlist import AllowlistStore, AllowlistTable
from firecontrol.service.coordinator import GrantCoordinator
from firecontrol.service.expiry import ExpirySweeper
from firecontrol.service.firewall import CommandResult, FirewallGateway

T0 = 1_700_000_000_000  # epoch ms
DAY_MS = 24 * 60 * 60 * 1000

LIST_ALL_OUTPUT = """public (active)
  target: default
  icmp-block-inversion: no
  interfaces: eth0
  sources: 10.0.0.5 10.0.0.6
  services: dhcpv6-client ssh
  ports:
  masquerade: no
  rich rules:
\trule family="ipv4" source address="192.168.1.0" accept
"""


def _action(args: Tuple[str, ...]) -> str:
    for arg in args:
        if arg.startswith("--add-source"):
            return "add"
        if arg.startswith("--remove-source"):
            return "remove"
        if arg == "--reload":
            return "reload"
        if arg == "--list-all":
            return "list"
    return "other"


class ScriptedGateway(FirewallGateway):
    """FirewallGateway with a scripted command runner."""

    def __init__(self):
        super().__init__(binary="firewall-cmd", timeout=1.0)
        self.calls: List[Tuple[str, ...]] = []
        self.responses: Dict[str, List[CommandResult]] = defaultdict(list)
        self.active = 0
        self.max_active = 0

    def script(self, action: str, returncode: int, stderr: str = "", stdout: str = ""):
        """Queue a result for the next ``action`` command."""
        self.responses[action].append(CommandResult(returncode, stdout, stderr))

    def fail(self, action: str, stderr: str = "Error: COMMAND_FAILED", times: int = 1):
        for _ in range(times):
            self.script(action, 1, stderr=stderr)

    def actions(self) -> List[str]:
        return [_action(args) for args in self.calls]

    async def _run(self, *args: str) -> CommandResult:
        self.calls.append(args)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            # Yield so overlapping callers would be observed
            await asyncio.sleep(0)
            action = _action(args)
            if self.responses[action]:
                return self.responses[action].pop(0)
            if action == "list":
                return CommandResult(0, LIST_ALL_OUTPUT, "")
            return CommandResult(0, "success\n", "")
        finally:
            self.active -= 1


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def table():
    return AllowlistTable()


@pytest.fixture
def store(tmp_path):
    return AllowlistStore(tmp_path)


@pytest.fixture
def coordinator(table, store, gateway, clock):
    return GrantCoordinator(table, store, gateway, clock=clock)


@pytest.fixture
def sweeper(table, coordinator, clock):
    return ExpirySweeper(table, coordinator, interval_seconds=3600, clock=clock)
