"""
Allowlist module for firecontrol.

TTL-bounded grants per (zone, source) and their durable record.
"""

from .table import (
    AllowlistTable,
    Allowlist,
    Grant,
    DEFAULT_DURATION_MS,
    now_ms,
)
from .store import AllowlistStore, encode_allowlist, decode_allowlist, records_view

__all__ = [
    "AllowlistTable",
    "Allowlist",
    "Grant",
    "DEFAULT_DURATION_MS",
    "now_ms",
    "AllowlistStore",
    "encode_allowlist",
    "decode_allowlist",
    "records_view",
]
