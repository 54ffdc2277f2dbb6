"""
Firewall module for firecontrol.

Gateway to firewalld's command-line tool and its zone summary parser.
"""

from .gateway import FirewallGateway, CommandResult, sanitize
from .parser import ZoneSummary, parse_list_all, SINGLE_VALUE_FIELDS

__all__ = [
    "FirewallGateway",
    "CommandResult",
    "sanitize",
    "ZoneSummary",
    "parse_list_all",
    "SINGLE_VALUE_FIELDS",
]
