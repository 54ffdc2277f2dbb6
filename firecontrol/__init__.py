"""
firecontrol - Temporary Firewall Access Daemon

Grants remote callers (webhooks, scripts) time-limited access to a host
by adding their address to a firewalld zone, and revokes it when the
grant window expires.

Architecture:
- Allowlist Table: authoritative in-memory grants per (zone, source)
- Persistence Store: iptable.json, rewritten after every mutation
- Firewall Gateway: firewall-cmd add/remove/reload/list
- Grant Coordinator: one firewall mutation at a time, in arrival order
- Expiry Sweeper: periodic revocation of expired grants
"""

__version__ = "1.0.0"
