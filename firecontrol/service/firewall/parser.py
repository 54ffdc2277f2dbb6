"""
Parser for ``firewall-cmd --zone=<zone> --list-all`` output.

Example input::

    public (active)
      target: default
      icmp-block-inversion: no
      interfaces: eth0
      sources: 10.0.0.5 10.0.0.6
      services: dhcpv6-client ssh
      masquerade: no
      rich rules:
    \trule family="ipv4" source address="10.1.0.0" accept
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

SINGLE_VALUE_FIELDS = frozenset(
    {
        "target",
        "icmp-block-inversion",
        "masquerade",
        "forward",
        "ingress-priority",
        "egress-priority",
    }
)


@dataclass
class ZoneSummary:
    """Structured rule summary of one zone."""

    title: str
    config: Dict[str, Union[str, List[str]]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "config": self.config}


def parse_list_all(output: str) -> ZoneSummary:
    lines = output.splitlines()
    title = lines[0].strip() if lines else ""
    config: Dict[str, Union[str, List[str]]] = {}
    last_key: Optional[str] = None

    for raw in lines[1:]:
        if not raw.strip():
            continue

        # Rich rules are listed one per tab-indented line under their key
        if raw.startswith("\t") and last_key is not None:
            values = config[last_key]
            if isinstance(values, list):
                values.append(raw.strip())
            continue

        key, _, value = raw.strip().partition(":")
        value = value.strip()
        if key in SINGLE_VALUE_FIELDS:
            config[key] = value
        else:
            config[key] = value.split()
        last_key = key

    return ZoneSummary(title=title, config=config)
