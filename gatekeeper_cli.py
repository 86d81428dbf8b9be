#!/usr/bin/env python3
"""
gatekeeper_cli.py: operator tool for the gatekeeper.

Edits the local allow-list file, or talks to a running control server to
redeem a confirmation code or fetch the log.

Usage:
    python3 gatekeeper_cli.py allowlist list
    python3 gatekeeper_cli.py allowlist add 203.0.113.7 --file whitelist.json
    python3 gatekeeper_cli.py redeem --api http://gate.example:8080 <code>
    python3 gatekeeper_cli.py log --api http://gate.example:8080
"""

import argparse
import asyncio
import sys

import aiohttp

from allowlist import AllowList
from errors import GatekeeperError
from stepup import SUCCESS


async def fetch(method, url, timeout, data=None):
    """Issue one request against the control server; return (status, body)."""
    async with aiohttp.ClientSession() as session:
        async with session.request(
            method, url, data=data, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as resp:
            return resp.status, await resp.text()


def cmd_allowlist(args):
    store = AllowList.load(args.file)
    if args.action == "list":
        for ip in store.entries():
            print(ip)
        return 0
    if args.action == "add":
        store.add(args.ip)
        print(f"✅ {args.ip} added to {args.file}", file=sys.stderr)
    else:
        store.remove(args.ip)
        print(f"✅ {args.ip} removed from {args.file}", file=sys.stderr)
    return 0


def cmd_redeem(args):
    url = f"{args.api.rstrip('/')}/api/authenticate"
    status, body = asyncio.run(fetch("POST", url, args.timeout, data={"code": args.code}))
    print(body)
    return 0 if status == 200 and body == SUCCESS else 1


def cmd_log(args):
    url = f"{args.api.rstrip('/')}/api/log"
    status, body = asyncio.run(fetch("GET", url, args.timeout))
    sys.stdout.write(body)
    return 0 if status == 200 else 1


def build_parser():
    parser = argparse.ArgumentParser(description="Operate a gatekeeper instance")
    sub = parser.add_subparsers(dest="command", required=True)

    p_allow = sub.add_parser("allowlist", help="Inspect or edit the allow-list file")
    p_allow.add_argument("action", choices=["list", "add", "remove"])
    p_allow.add_argument("ip", nargs="?", help="IP address for add/remove")
    p_allow.add_argument(
        "--file", default="whitelist.json", help="Allow-list file (default: whitelist.json)"
    )
    p_allow.set_defaults(func=cmd_allowlist)

    for name, func, help_text in (
        ("redeem", cmd_redeem, "Redeem a confirmation code"),
        ("log", cmd_log, "Print the gatekeeper log"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--api", required=True, help="Control server base URL, e.g. http://host:8080"
        )
        p.add_argument(
            "--timeout", type=int, default=15, help="HTTP timeout in seconds"
        )
        if name == "redeem":
            p.add_argument("code")
        p.set_defaults(func=func)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "allowlist" and args.action != "list" and not args.ip:
        parser.error(f"allowlist {args.action} requires an IP address")

    try:
        return args.func(args)
    except GatekeeperError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        print(f"⚠️  request failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
