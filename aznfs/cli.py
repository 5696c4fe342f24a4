"""Command-line interface for aznfs."""

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from aznfs import __version__
from aznfs.core.config import Config, StoreInitError, ensure_layout, load_config
from aznfs.core.logging import Logger, set_logger
from aznfs.lib.process import CommandError, check_tool
from aznfs.net.nat import NatError
from aznfs.net.resolver import ResolutionError
from aznfs.net.validate import is_private_ip, is_valid_ipv4_address, is_valid_ipv4_prefix
from aznfs.redirect import RedirectError, Redirector
from aznfs.store.mountmap import MountmapEntry, MountmapError

if TYPE_CHECKING:
    from aznfs.core.context import Context

OPERATION_ERRORS = (ResolutionError, NatError, MountmapError, RedirectError, CommandError)
REQUIRED_TOOLS = ["host", "ip", "iptables", "chattr", "findmnt"]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="aznfs",
        description="Redirect NFS mounts to the current IP of a blob endpoint",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"aznfs {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: $AZNFS_CONFIG or /etc/aznfs/config.yaml)",
    )
    parser.add_argument(
        "--format",
        choices=["plain", "json"],
        default="plain",
        help="Output format (default: plain)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a blob FQDN to its IPv4 address")
    resolve_parser.add_argument("fqdn", help="Blob endpoint FQDN")

    check_parser = subparsers.add_parser("check-ip", help="Validate and classify an IPv4 address")
    check_parser.add_argument("address", help="Address or prefix to check")

    add_parser = subparsers.add_parser("add", help="Redirect a local address to a blob endpoint")
    add_parser.add_argument("fqdn", help="Blob endpoint FQDN")
    add_parser.add_argument("local_ip", help="Private local address the NFS client mounts")

    remove_parser = subparsers.add_parser("remove", help="Remove the redirect for a local address")
    remove_parser.add_argument("local_ip", help="Local address to stop redirecting")

    refresh_parser = subparsers.add_parser("refresh", help="Follow endpoint IP changes")
    refresh_parser.add_argument(
        "local_ips",
        nargs="*",
        help="Local addresses to refresh (default: all)",
    )

    subparsers.add_parser("list", help="List mountmap entries")
    subparsers.add_parser("reconcile", help="Repair drift between mountmap, mounts and NAT table")
    subparsers.add_parser("init", help="Create the application directory, log and mountmap")

    return parser


def emit(args: argparse.Namespace, data: dict, plain: str) -> None:
    if args.format == "json":
        print(json.dumps(data, indent=2))
    else:
        print(plain)


def cmd_resolve(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Resolve a blob FQDN."""
    address = redirector.resolver.resolve_ipv4(args.fqdn)
    emit(args, {"fqdn": args.fqdn, "address": address}, address)
    return 0


def cmd_check_ip(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Validate and classify an address."""
    kwargs = {"context": redirector.context, "timeout": config.command_timeout}
    valid = is_valid_ipv4_address(args.address, **kwargs)
    result = {
        "address": args.address,
        "valid_address": valid,
        "valid_prefix": is_valid_ipv4_prefix(args.address, **kwargs),
        "private": is_private_ip(args.address, **kwargs) if valid else False,
    }
    emit(args, result, "\n".join(f"{key}: {value}" for key, value in result.items()))
    return 0 if valid or result["valid_prefix"] else 1


def cmd_add(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Set up a redirect."""
    entry = redirector.setup(args.fqdn, args.local_ip)
    emit(args, entry_dict(entry), entry.line)
    return 0


def cmd_remove(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Tear down a redirect."""
    entry = redirector.find(args.local_ip)
    if entry is None:
        redirector.logger.plain(f"No MOUNTMAP entry for {args.local_ip}.")
        emit(args, {"local_ip": args.local_ip, "removed": False}, f"No redirect for {args.local_ip}")
        return 0

    redirector.teardown(entry)
    emit(args, {**entry_dict(entry), "removed": True}, f"Removed {entry.line}")
    return 0


def cmd_refresh(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Re-resolve endpoints and follow IP changes."""
    entries = redirector.store.entries()
    if args.local_ips:
        entries = [e for e in entries if e.local_ip in args.local_ips]

    results = []
    failures = 0
    for entry in entries:
        try:
            current = redirector.refresh(entry)
        except OPERATION_ERRORS as e:
            failures += 1
            results.append({**entry_dict(entry), "error": str(e)})
            continue
        results.append({**entry_dict(current), "changed": current != entry})

    plain_lines = []
    for item in results:
        if "error" in item:
            plain_lines.append(f"{item['fqdn']}: ERROR {item['error']}")
        else:
            status = "changed" if item["changed"] else "unchanged"
            plain_lines.append(f"{item['fqdn']}: {item['blob_ip']} ({status})")
    emit(args, {"entries": results}, "\n".join(plain_lines) or "No entries.")
    return 1 if failures else 0


def cmd_list(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """List mountmap entries."""
    entries = redirector.store.entries()
    if args.format == "json":
        print(json.dumps({"entries": [entry_dict(e) for e in entries]}, indent=2))
    elif not entries:
        print("No entries.")
    else:
        for entry in entries:
            print(f"{entry.fqdn:50} {entry.local_ip:16} {entry.blob_ip}")
    return 0


def cmd_reconcile(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Repair drift."""
    report = redirector.reconcile()
    data = report.to_dict()
    plain = "\n".join(
        f"{key.replace('_', ' ').title()}: {', '.join(values) if values else '(none)'}"
        for key, values in data.items()
    )
    emit(args, data, plain)
    return 1 if report.errors else 0


def cmd_init(args: argparse.Namespace, redirector: Redirector, config: Config) -> int:
    """Report the layout (created during startup) and tool availability."""
    tools = {tool: check_tool(tool, context=redirector.context) for tool in REQUIRED_TOOLS}
    missing = [tool for tool, available in tools.items() if not available]

    lines = [f"Log file: {config.log_file}", f"Mountmap: {config.mountmap_file}"]
    for tool, available in tools.items():
        lines.append(f"  {tool}: {'ok' if available else 'MISSING'}")
    emit(
        args,
        {
            "log_file": str(config.log_file),
            "mountmap": str(config.mountmap_file),
            "tools": tools,
            "missing_tools": missing,
        },
        "\n".join(lines),
    )
    return 1 if missing else 0


def entry_dict(entry: MountmapEntry) -> dict:
    return {"fqdn": entry.fqdn, "local_ip": entry.local_ip, "blob_ip": entry.blob_ip}


def main(argv: list[str] | None = None, context: "Context | None" = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = load_config(args.config)
    if args.verbose:
        config.verbose = True

    logger = Logger(config.log_file, verbose=config.verbose)
    set_logger(logger)

    try:
        ensure_layout(config, context=context, logger=logger)
    except StoreInitError as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        return 2

    commands = {
        "resolve": cmd_resolve,
        "check-ip": cmd_check_ip,
        "add": cmd_add,
        "remove": cmd_remove,
        "refresh": cmd_refresh,
        "list": cmd_list,
        "reconcile": cmd_reconcile,
        "init": cmd_init,
    }

    redirector = Redirector.from_config(config, context=context, logger=logger)
    try:
        return commands[args.command](args, redirector, config)
    except OPERATION_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
