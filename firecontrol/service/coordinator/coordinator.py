"""
Grant Coordinator for firecontrol.

Single serialized path for every mutation of firewall state:

    gateway call -> (on success) table update -> store save

asyncio.Lock wakes waiters in FIFO order, so requests are applied and
persisted in the order they arrived. Validation happens before queueing.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..allowlist.store import AllowlistStore
from ..allowlist.table import AllowlistTable, now_ms
from ..errors import ExternalToolFailure, InvalidArgument, PersistenceFailure
from ..firewall.gateway import FirewallGateway, sanitize

logger = logging.getLogger(__name__)


@dataclass
class GrantResult:
    """Outcome of a grant request, delivered only to its caller."""

    status: bool
    zone: Optional[str] = None
    address: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    expires_at: Optional[int] = None  # epoch ms

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"status": self.status}
        if self.message is not None:
            d["message"] = self.message
        if self.error is not None:
            d["error"] = self.error
        if self.expires_at is not None:
            d["expiresAt"] = self.expires_at
        return d


def expiry_message(expires_at: int) -> str:
    when = datetime.fromtimestamp(expires_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
    return f"Source added (it will expire at {when})."


class GrantCoordinator:
    """Serializes grant and revoke operations against the firewall."""

    def __init__(
        self,
        table: AllowlistTable,
        store: AllowlistStore,
        gateway: FirewallGateway,
        clock: Callable[[], int] = now_ms,
        persist_timeout: float = 5.0,
    ):
        self.table = table
        self.store = store
        self.gateway = gateway
        self.clock = clock
        self.persist_timeout = persist_timeout

        self._lock = asyncio.Lock()
        self._waiting = 0

    @property
    def queue_depth(self) -> int:
        """Operations waiting for, or holding, the serialized path."""
        return self._waiting

    async def grant(self, zone: Optional[str], address: Optional[str]) -> GrantResult:
        """Allow ``address`` in ``zone`` for the table's default duration."""
        try:
            zone = sanitize(zone, "zone")
            address = sanitize(address, "source")
        except InvalidArgument as e:
            return GrantResult(status=False, zone=zone, address=address, error=str(e))

        self._waiting += 1
        try:
            async with self._lock:
                try:
                    await self.gateway.grant(zone, address)
                except ExternalToolFailure as e:
                    logger.warning(f"{zone}.{address} grant FAILED: {e.diagnostic}")
                    return GrantResult(
                        status=False, zone=zone, address=address, error=str(e)
                    )

                expires_at = self.table.upsert(zone, address, self.clock())
                await self._persist()
        finally:
            self._waiting -= 1

        logger.info(f"{zone}.{address} ADDED until {expires_at}")
        return GrantResult(
            status=True,
            zone=zone,
            address=address,
            message=expiry_message(expires_at),
            expires_at=expires_at,
        )

    async def revoke(
        self,
        zone: str,
        address: str,
        persist: bool = True,
        expired_as_of: Optional[int] = None,
    ) -> bool:
        """
        Remove ``address`` from ``zone`` on the firewall, then from the table.

        With ``expired_as_of`` the grant is only revoked if it is still
        expired at that time once the lock is held; a renewed grant is
        left untouched and False is returned. Raises ExternalToolFailure
        with the table unchanged if the tool fails.
        """
        self._waiting += 1
        try:
            async with self._lock:
                if expired_as_of is not None:
                    grant = self.table.get(zone, address)
                    if grant is not None and not grant.is_expired(expired_as_of):
                        logger.info(f"{zone}.{address} renewed before revoke, skipping")
                        return False

                await self.gateway.revoke(zone, address)
                self.table.remove(zone, address)
                if persist:
                    await self._persist()
        finally:
            self._waiting -= 1

        logger.info(f"{zone}.{address} REMOVED")
        return True

    async def persist(self) -> None:
        """Write the current table through the serialized path."""
        self._waiting += 1
        try:
            async with self._lock:
                await self._persist()
        finally:
            self._waiting -= 1

    async def _persist(self) -> None:
        # The in-memory table stays authoritative if the write fails
        try:
            await asyncio.wait_for(
                self.store.save(self.table.snapshot()), timeout=self.persist_timeout
            )
        except PersistenceFailure as e:
            logger.error(f"Allowlist not persisted: {e}")
        except asyncio.TimeoutError:
            logger.error(
                f"Allowlist not persisted: write timed out after {self.persist_timeout}s"
            )
