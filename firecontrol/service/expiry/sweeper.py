"""
Expiry Sweeper for firecontrol.

Periodically revokes grants whose expiry has passed. A grant is only
dropped from the table after its firewall revoke succeeded; failed
revokes stay in the table and are retried on the next cycle.

Cycles never overlap: the next one is scheduled only after the
previous one (including its single persist) has finished.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..allowlist.table import AllowlistTable, now_ms
from ..coordinator.coordinator import GrantCoordinator
from ..errors import FirecontrolError

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 10 * 60  # seconds


class SweeperState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REVOKING = "revoking"


@dataclass
class SweepReport:
    """What one sweep cycle did."""

    now: int
    revoked: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    renewed: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "now": self.now,
            "revoked": [f"{z}.{a}" for z, a in self.revoked],
            "failed": [f"{z}.{a}" for z, a in self.failed],
            "renewed": [f"{z}.{a}" for z, a in self.renewed],
        }


class ExpirySweeper:
    """Recurring sweep of expired grants through the Grant Coordinator."""

    def __init__(
        self,
        table: AllowlistTable,
        coordinator: GrantCoordinator,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ):
        self.table = table
        self.coordinator = coordinator
        self.interval = interval_seconds
        self.clock = clock

        self.state = SweeperState.IDLE
        self.last_report: Optional[SweepReport] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Run one sweep now, then keep sweeping every ``interval`` seconds."""
        self._running = True
        await self.sweep()
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Expiry sweeper started (interval: {self.interval}s)")

    async def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Expiry sweeper stopped")

    async def sweep(self, now: Optional[int] = None) -> SweepReport:
        """Revoke everything expired as of ``now``; persist once."""
        now = self.clock() if now is None else now
        report = SweepReport(now=now)

        self.state = SweeperState.SCANNING
        expired = self.table.list_expired(now)

        try:
            self.state = SweeperState.REVOKING
            for zone, address in expired:
                try:
                    revoked = await self.coordinator.revoke(
                        zone, address, persist=False, expired_as_of=now
                    )
                except FirecontrolError as e:
                    logger.warning(f"{zone}.{address} revoke FAILED, will retry: {e}")
                    report.failed.append((zone, address))
                    continue

                if revoked:
                    report.revoked.append((zone, address))
                else:
                    report.renewed.append((zone, address))

            await self.coordinator.persist()
        finally:
            self.state = SweeperState.IDLE
            self.last_report = report

        if expired:
            logger.info(
                f"Sweep done: {len(report.revoked)} revoked, "
                f"{len(report.failed)} failed, {len(report.renewed)} renewed"
            )
        return report

    async def _sweep_loop(self):
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in expiry sweep: {e}")
