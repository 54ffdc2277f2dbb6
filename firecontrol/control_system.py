"""
firecontrol - Unified Service Assembly

Wires the allowlist components into one service object:
- Allowlist Table (in-memory grants)
- Persistence Store (iptable.json)
- Firewall Gateway (firewall-cmd)
- Grant Coordinator (serialized mutations)
- Expiry Sweeper (periodic revocation)
"""

import logging
from typing import Any, Dict, Optional

from .config.settings import Settings
from .service.allowlist import AllowlistStore, AllowlistTable, records_view
from .service.coordinator import GrantCoordinator, GrantResult
from .service.expiry import ExpirySweeper
from .service.firewall import FirewallGateway, ZoneSummary

logger = logging.getLogger(__name__)


class FireControl:
    """
    Temporary firewall access service.

    Grants go through the coordinator; listing a zone reads the live
    firewall directly; listing grants reads the in-memory table.
    """

    def __init__(
        self,
        table: AllowlistTable,
        store: AllowlistStore,
        gateway: FirewallGateway,
        coordinator: GrantCoordinator,
        sweeper: ExpirySweeper,
        default_zone: Optional[str] = None,
    ):
        self.table = table
        self.store = store
        self.gateway = gateway
        self.coordinator = coordinator
        self.sweeper = sweeper
        self.default_zone = default_zone
        self._started = False

    @classmethod
    def from_settings(
        cls, settings: Settings, gateway: Optional[FirewallGateway] = None
    ) -> "FireControl":
        table = AllowlistTable(default_duration_ms=settings.grant_duration_ms)
        store = AllowlistStore(settings.folder_path)
        gateway = gateway or FirewallGateway(
            binary=settings.firewall_cmd, timeout=settings.command_timeout_seconds
        )
        coordinator = GrantCoordinator(
            table, store, gateway, persist_timeout=settings.command_timeout_seconds
        )
        sweeper = ExpirySweeper(
            table, coordinator, interval_seconds=settings.sweep_interval_seconds
        )
        return cls(table, store, gateway, coordinator, sweeper, default_zone=settings.zone)

    async def start(self):
        """Load the durable record, sweep once, then sweep periodically."""
        self.table.replace(await self.store.load())
        await self.sweeper.start()
        self._started = True
        logger.info(f"FireControl started with {len(self.table)} active grants")

    async def stop(self):
        if not self._started:
            return
        await self.sweeper.stop()
        await self.coordinator.persist()
        self._started = False
        logger.info("FireControl stopped")

    async def grant(self, zone: Optional[str], address: Optional[str]) -> GrantResult:
        return await self.coordinator.grant(zone or self.default_zone, address)

    async def list_zone(self, zone: Optional[str]) -> ZoneSummary:
        return await self.gateway.list_zone(zone or self.default_zone)

    def grants(self, zone: Optional[str] = None) -> Dict[str, Any]:
        snapshot = self.table.snapshot()
        if zone:
            snapshot = {zone: snapshot.get(zone, [])}
        return records_view(snapshot)

    def stats(self) -> Dict[str, Any]:
        report = self.sweeper.last_report
        return {
            "grants": len(self.table),
            "zones": len(self.table.zones()),
            "queue_depth": self.coordinator.queue_depth,
            "sweeper": {
                "state": self.sweeper.state.value,
                "interval_seconds": self.sweeper.interval,
                "last_sweep": report.to_dict() if report else None,
            },
        }
