"""
HTTP API for firecontrol.
"""

from .access import create_access_router, AccessParams, GrantResponse, ZoneListResponse
from .auth import check_secret, sign_body

__all__ = [
    "create_access_router",
    "AccessParams",
    "GrantResponse",
    "ZoneListResponse",
    "check_secret",
    "sign_body",
]
