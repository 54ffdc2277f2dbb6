#!/usr/bin/env python3
"""
firecontrol CLI

Command-line interface for running and talking to the firecontrol daemon.
"""

import argparse
import json
import sys
from typing import Any, Dict, Optional

import httpx

from .api.auth import sign_body

DEFAULT_URL = "http://127.0.0.1:81"


def get_client(args):
    """Get HTTP client."""
    return httpx.Client(base_url=args.url, timeout=args.timeout)


def _request(args, path: str, params: Dict[str, Any]) -> httpx.Response:
    """POST ``params`` as JSON, authenticated the way the daemon expects."""
    params = {k: v for k, v in params.items() if v is not None}
    headers = {"Content-Type": "application/json"}

    if args.secret and args.plain:
        params["secret"] = args.secret
    body = json.dumps(params).encode()
    if args.secret and not args.plain:
        headers["X-Hub-Signature"] = sign_body(args.secret, body)

    client = get_client(args)
    return client.post(args.endpoint + path, content=body, headers=headers)


def _fail(message: str):
    print(f"❌ {message}")
    sys.exit(1)


def cmd_serve(args):
    """Run the daemon in the foreground."""
    from .config.settings import Settings
    from .main import main as run_daemon

    settings = Settings.load(args.config).merged(
        {
            "host": args.host,
            "port": args.port,
            "logs": True if args.logs else None,
            "test": True if args.test else None,
            "secret": args.secret,
            "plain": True if args.plain else None,
            "zone": args.zone,
            "endpoint": args.endpoint or None,
            "folder": args.folder,
        }
    )
    run_daemon(settings)


def cmd_add(args):
    """Grant a source temporary access."""
    try:
        data = _request(args, "/add", {"zone": args.zone, "source": args.source}).json()
    except httpx.ConnectError:
        _fail("firecontrol daemon not running")

    if data.get("status"):
        print(f"✅ {data.get('message')}")
    else:
        _fail(data.get("error") or data.get("message") or "Grant failed")


def cmd_list(args):
    """Show the live firewalld summary of a zone."""
    try:
        data = _request(args, "/list", {"zone": args.zone}).json()
    except httpx.ConnectError:
        _fail("firecontrol daemon not running")

    if not data.get("status"):
        _fail(data.get("error") or "List failed")

    print(f"🧱 {data.get('title', '')}")
    for key, value in data.get("config", {}).items():
        if isinstance(value, list):
            value = " ".join(value)
        print(f"   {key}: {value}")


def cmd_grants(args):
    """Show the grants held by the daemon."""
    try:
        response = get_client(args).get(
            args.endpoint + "/grants",
            params=_grants_params(args),
            headers=_grants_headers(args),
        )
        data = response.json()
    except httpx.ConnectError:
        _fail("firecontrol daemon not running")

    if not data.get("status"):
        _fail(data.get("error") or "Could not read grants")

    grants = data.get("grants", {})
    total = sum(len(entries) for entries in grants.values())
    print(f"📋 Active grants: {total}")
    for zone, entries in grants.items():
        for entry in entries:
            print(f"   {zone}.{entry['ip']} expires {entry['expiresAt']}")


def _grants_params(args) -> Dict[str, str]:
    params = {"zone": args.zone} if args.zone else {}
    if args.secret and args.plain:
        params["secret"] = args.secret
    return params


def _grants_headers(args) -> Optional[Dict[str, str]]:
    if args.secret and not args.plain:
        return {"X-Hub-Signature": sign_body(args.secret, b"")}
    return None


def cmd_health(args):
    """Show daemon health."""
    try:
        health = get_client(args).get("/health").json()
    except httpx.ConnectError:
        _fail("firecontrol daemon not running")

    print("🛡️  firecontrol Status")
    print("=" * 40)
    print(f"Status: {health['status']}")
    print(f"Version: {health['version']}")
    print(f"Grants: {health['grants']} in {health['zones']} zones")
    sweeper = health["sweeper"]
    print(f"Sweeper: {sweeper['state']} (every {sweeper['interval_seconds']}s)")
    last = sweeper.get("last_sweep")
    if last:
        print(
            f"Last sweep: {len(last['revoked'])} revoked, "
            f"{len(last['failed'])} failed"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="firecontrol CLI - Temporary firewall access",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  firecontrol serve --zone public --secret s3cr3t   Run the daemon
  firecontrol add 10.0.0.5 --zone public            Grant access for 24h
  firecontrol list --zone public                    Show zone rules
  firecontrol grants                                Show active grants
  firecontrol health                                Daemon status
        """,
    )
    parser.add_argument("--url", default=DEFAULT_URL, help="Daemon base URL")
    parser.add_argument("--timeout", type=float, default=10, help="Request timeout")
    parser.add_argument("--secret", help="Shared secret")
    parser.add_argument(
        "--plain", action="store_true", help="Send the secret as a parameter"
    )
    parser.add_argument("--endpoint", default="", help="Endpoint path prefix")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the daemon")
    serve_parser.add_argument("--config", help="YAML settings file")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)
    serve_parser.add_argument("--zone", help="Default zone")
    serve_parser.add_argument("--folder", help="Directory for iptable.json")
    serve_parser.add_argument("--logs", action="store_true", help="Verbose logs")
    serve_parser.add_argument("--test", action="store_true", help="Serve test page")
    serve_parser.set_defaults(func=cmd_serve)

    # add
    add_parser = subparsers.add_parser("add", help="Grant a source access")
    add_parser.add_argument("source", help='Address, or "client" for your own')
    add_parser.add_argument("--zone", help="Zone (daemon default if omitted)")
    add_parser.set_defaults(func=cmd_add)

    # list
    list_parser = subparsers.add_parser("list", help="Show zone rules")
    list_parser.add_argument("--zone", help="Zone (daemon default if omitted)")
    list_parser.set_defaults(func=cmd_list)

    # grants
    grants_parser = subparsers.add_parser("grants", help="Show active grants")
    grants_parser.add_argument("--zone", help="Only this zone")
    grants_parser.set_defaults(func=cmd_grants)

    # health
    health_parser = subparsers.add_parser("health", help="Daemon status")
    health_parser.set_defaults(func=cmd_health)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
