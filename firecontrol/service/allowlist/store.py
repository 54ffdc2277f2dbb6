"""
Persistence Store for the allowlist.

The record is a single JSON document mapping zone -> list of
{"ip", "added", "duration"} entries (epoch-ms integers). Every save
rewrites the whole file through a temp file and an atomic rename, so
the on-disk copy is always a complete snapshot.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
import aiofiles.os

from ..errors import PersistenceFailure
from .table import Allowlist, Grant

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "iptable.json"


def encode_allowlist(allowlist: Allowlist) -> str:
    data = {
        zone: [grant.to_record() for grant in grants]
        for zone, grants in allowlist.items()
    }
    return json.dumps(data, indent=4)


def decode_allowlist(content: str) -> Allowlist:
    """Parse a record. Raises ValueError on anything malformed."""
    data: Any = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("allowlist record must be an object of zones")

    allowlist: Allowlist = {}
    for zone, entries in data.items():
        if not isinstance(entries, list):
            raise ValueError(f"zone {zone!r} must map to a list")
        try:
            allowlist[zone] = _dedupe(
                zone, [Grant.from_record(entry) for entry in entries]
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed entry in zone {zone!r}: {e}") from e
    return allowlist


def _dedupe(zone: str, grants: List[Grant]) -> List[Grant]:
    """One grant per address; the most recently added one wins."""
    by_address: Dict[str, Grant] = {}
    for grant in grants:
        kept = by_address.get(grant.address)
        if kept is not None:
            logger.warning(f"Duplicate record for {zone}.{grant.address}, keeping the newest")
            if grant.granted_at < kept.granted_at:
                continue
        by_address[grant.address] = grant
    return list(by_address.values())


class AllowlistStore:
    """Loads and saves the allowlist record under a folder."""

    def __init__(self, folder: Union[str, Path], filename: str = DEFAULT_FILENAME):
        self.folder = Path(folder)
        self.path = self.folder / filename
        self._pending: Optional["asyncio.Future[None]"] = None

    async def load(self) -> Allowlist:
        """
        Read the record.

        A missing or unparsable record is not fatal: an empty allowlist
        is returned and written out immediately. A corrupt file is kept
        aside as ``<name>.corrupt`` first.
        """
        try:
            async with aiofiles.open(self.path, "r") as f:
                content = await f.read()
        except FileNotFoundError:
            logger.warning(f"No allowlist record at {self.path}, starting empty")
            return await self._reset()
        except OSError as e:
            logger.error(f"Error reading allowlist record {self.path}: {e}")
            return await self._reset()

        try:
            allowlist = decode_allowlist(content)
        except ValueError as e:
            logger.warning(f"Allowlist record {self.path} is corrupt ({e}), resetting")
            await self._set_aside()
            return await self._reset()

        logger.info(
            f"Loaded {sum(len(g) for g in allowlist.values())} grants from {self.path}"
        )
        return allowlist

    async def save(self, allowlist: Allowlist) -> None:
        """
        Overwrite the record with ``allowlist``.

        The write itself runs as a separate task. If the caller stops
        waiting (timeout, cancellation) it still completes, and the next
        save waits for it before touching the temp file.
        """
        content = encode_allowlist(allowlist)
        await self._settle_pending()
        self._pending = asyncio.ensure_future(self._write(content))
        await asyncio.shield(self._pending)

    async def _settle_pending(self) -> None:
        if self._pending is None or self._pending.done():
            self._pending = None
            return
        try:
            await asyncio.shield(self._pending)
        except PersistenceFailure as e:
            logger.warning(f"Previous timed-out allowlist write failed: {e}")
        else:
            logger.info("Previous timed-out allowlist write has finished")
        self._pending = None

    async def _write(self, content: str) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            await aiofiles.os.makedirs(self.folder, exist_ok=True)
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceFailure(str(self.path), str(e)) from e

    async def _reset(self) -> Allowlist:
        allowlist: Allowlist = {}
        try:
            await self.save(allowlist)
        except PersistenceFailure as e:
            logger.error(f"Could not write empty allowlist record: {e}")
        return allowlist

    async def _set_aside(self) -> None:
        corrupt_path = self.path.with_name(self.path.name + ".corrupt")
        try:
            await aiofiles.os.replace(self.path, corrupt_path)
            logger.warning(f"Moved corrupt allowlist record to {corrupt_path}")
        except OSError as e:
            logger.error(f"Could not move corrupt record aside: {e}")


def records_view(allowlist: Allowlist) -> Dict[str, Any]:
    """JSON-ready view of an allowlist including computed expiry."""
    return {
        zone: [dict(grant.to_record(), expiresAt=grant.expires_at) for grant in grants]
        for zone, grants in allowlist.items()
    }
