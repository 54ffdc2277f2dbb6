"""
Allowlist Table for firecontrol.

In-memory authoritative record of active grants, keyed by zone.
Within a zone there is at most one grant per source address; a
re-grant replaces the previous one and resets its expiry.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MS = 24 * 60 * 60 * 1000  # 24 hours


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Grant:
    """One active allowance for a source address in a zone."""

    address: str
    granted_at: int  # epoch ms
    duration: int  # ms

    @property
    def expires_at(self) -> int:
        return self.granted_at + self.duration

    def is_expired(self, now: int) -> bool:
        return self.expires_at <= now

    def to_record(self) -> Dict[str, Any]:
        """On-disk representation (field names match iptable.json)."""
        return {"ip": self.address, "added": self.granted_at, "duration": self.duration}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Grant":
        address = record["ip"]
        added = record["added"]
        duration = record["duration"]
        if not isinstance(address, str) or not address:
            raise ValueError(f"invalid ip in record: {record!r}")
        for value in (added, duration):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"invalid timestamp in record: {record!r}")
        return cls(address=address, granted_at=added, duration=duration)


# zone -> ordered grants
Allowlist = Dict[str, List[Grant]]


class AllowlistTable:
    """
    Owns the zone -> grants map.

    All mutation goes through the Grant Coordinator; read-only queries
    (snapshot, get, list_expired) may be called from anywhere.
    """

    def __init__(
        self,
        default_duration_ms: int = DEFAULT_DURATION_MS,
        allowlist: Optional[Allowlist] = None,
    ):
        self.default_duration_ms = default_duration_ms
        self._zones: Allowlist = {}
        if allowlist:
            self.replace(allowlist)

    def replace(self, allowlist: Allowlist) -> None:
        """Replace the whole table (used once at startup after load)."""
        self._zones = {zone: list(grants) for zone, grants in allowlist.items()}
        logger.info(f"Allowlist table loaded with {len(self)} grants")

    def upsert(self, zone: str, address: str, now: int) -> int:
        """
        Record a grant for (zone, address) starting at ``now``.

        Returns the new expiry in epoch ms.
        """
        if not zone:
            raise InvalidArgument("zone")
        if not address:
            raise InvalidArgument("source")

        grants = self._zones.setdefault(zone, [])
        grants[:] = [g for g in grants if g.address != address]

        grant = Grant(address=address, granted_at=now, duration=self.default_duration_ms)
        grants.append(grant)
        return grant.expires_at

    def list_expired(self, now: int) -> List[Tuple[str, str]]:
        """Every (zone, address) whose expiry is at or before ``now``."""
        return [
            (zone, grant.address)
            for zone, grants in self._zones.items()
            for grant in grants
            if grant.is_expired(now)
        ]

    def remove(self, zone: str, address: str) -> bool:
        """Drop the grant if present. Absent pairs are not an error."""
        grants = self._zones.get(zone)
        if not grants:
            return False
        kept = [g for g in grants if g.address != address]
        if len(kept) == len(grants):
            return False
        grants[:] = kept
        return True

    def get(self, zone: str, address: str) -> Optional[Grant]:
        for grant in self._zones.get(zone, ()):
            if grant.address == address:
                return grant
        return None

    def snapshot(self) -> Allowlist:
        """Copy of the table; grants are immutable so a shallow copy suffices."""
        return {zone: list(grants) for zone, grants in self._zones.items()}

    def zone_grants(self, zone: str) -> Sequence[Grant]:
        return tuple(self._zones.get(zone, ()))

    def zones(self) -> List[str]:
        return list(self._zones)

    def __len__(self) -> int:
        return sum(len(grants) for grants in self._zones.values())
