"""
Grant Coordinator module for firecontrol.

Serialization boundary for all firewall mutations.
"""

from .coordinator import GrantCoordinator, GrantResult, expiry_message

__all__ = ["GrantCoordinator", "GrantResult", "expiry_message"]
