#!/usr/bin/env python3
"""
calhub Command Line Interface

Main entry point for the `calhub` command.

Usage:
    calhub list                                   # Show configured accounts
    calhub add work --name "Work" --provider microsoft365 \
        --config TenantId=contoso.onmicrosoft.com --config ClientId=...
    calhub update work --priority 10
    calhub remove work --logout                   # Remove and clear credentials
    calhub logout work                            # Clear credentials only
    calhub status                                 # Offline credential status
    calhub reauth work [--device-code]            # Sign in again
    calhub serve                                  # Start the admin API
    calhub keygen                                 # New CALHUB_ENCRYPTION_KEY
"""

import argparse
import json
import os
import sys
import time

from dotenv import load_dotenv

from calhub import __version__
from calhub.accounts.errors import CalhubError
from calhub.accounts.service import create_account, update_account
from calhub.logging_config import LOG_LEVEL_ENV, get_logger, setup_logging
from calhub.security.token_crypto import generate_key
from calhub.services import build_services
from calhub.settings import load_settings

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 2.0


def _parse_config_pairs(pairs: list[str] | None) -> dict[str, str]:
    """Turn ["Key=Value", ...] into a dict. Values may contain '='."""
    config: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got '{pair}'")
        config[key.strip()] = value
    return config


def _services():
    settings = load_settings()
    return build_services(settings)


# =============================================================================
# Account commands
# =============================================================================


def cmd_list(args):
    """Handle list subcommand."""
    store, _, _ = _services()
    records = store.list()

    if args.json:
        print(json.dumps([r.summary() for r in records], indent=2))
        return

    if not records:
        print("No accounts configured. Add one with: calhub add")
        return

    print(f"{'ID':<24} {'PROVIDER':<14} {'ENABLED':<8} {'PRIO':>4}  NAME")
    for r in records:
        enabled = "yes" if r.enabled else "no"
        print(f"{r.id:<24} {r.provider.value:<14} {enabled:<8} {r.priority:>4}  {r.display_name}")


def cmd_add(args):
    """Handle add subcommand."""
    store, _, _ = _services()
    record = create_account(
        store,
        args.id,
        args.name,
        args.provider,
        domains=args.domain,
        enabled=not args.disabled,
        priority=args.priority,
        provider_config=_parse_config_pairs(args.config),
    )
    logger.info("account_added", account_id=record.id, provider=record.provider.value)
    print(f"Added account '{record.id}' ({record.provider.display_name}).")


def cmd_update(args):
    """Handle update subcommand. --config pairs merge into the existing config."""
    store, _, _ = _services()

    provider_config = None
    if args.config or args.unset:
        existing = store.get(args.id)
        provider_config = dict(existing.provider_config) if existing else {}
        provider_config.update(_parse_config_pairs(args.config))
        for key in args.unset or []:
            provider_config = {k: v for k, v in provider_config.items() if k.lower() != key.lower()}

    enabled = None
    if args.enable:
        enabled = True
    elif args.disable:
        enabled = False

    record = update_account(
        store,
        args.id,
        display_name=args.name,
        domains=args.domain,
        enabled=enabled,
        priority=args.priority,
        provider_config=provider_config,
    )
    print(f"Updated account '{record.id}'.")


def cmd_remove(args):
    """Handle remove subcommand."""
    store, _, _ = _services()
    store.remove(args.id, clear_credentials=args.logout)
    suffix = " and cleared its credentials" if args.logout else ""
    print(f"Removed account '{args.id}'{suffix}.")


def cmd_logout(args):
    """Handle logout subcommand."""
    store, _, _ = _services()
    if store.clear_credentials(args.id):
        print(f"Credentials cleared for account '{args.id}'.")
    else:
        print(f"No stored credentials for account '{args.id}'.")


def cmd_status(args):
    """Offline credential status for one or all accounts."""
    store, credentials, _ = _services()
    all_records = store.list()
    records = all_records

    if args.id:
        records = [r for r in all_records if r.id.lower() == args.id.lower()]
        if not records:
            print(f"Account '{args.id}' not found.")
            return 1

    return _print_status(records, credentials, all_records, args.json)


def _print_status(records, credentials, all_records, as_json: bool):
    rows = [(r, credentials.status(r, all_records).value) for r in records]

    if as_json:
        print(json.dumps([{**r.summary(), "credentialStatus": s} for r, s in rows], indent=2))
        return

    for r, s in rows:
        print(f"{r.id:<24} {r.provider.value:<14} {s}")


# =============================================================================
# Authentication commands
# =============================================================================


def cmd_reauth(args):
    """Sign in again, interactively or with a device code."""
    _, _, orchestrator = _services()

    if not args.device_code:
        orchestrator.authenticate_interactive(args.id)
        print(f"Authentication completed for '{args.id}'.")
        return

    response = orchestrator.start_device_code_flow(args.id)
    print(response.message or f"Open {response.verification_url} and enter {response.user_code}")
    print("Waiting for sign-in (Ctrl+C to cancel)...")

    try:
        while True:
            snapshot = orchestrator.get_flow_status(args.id)
            if snapshot.status not in ("pending", "awaiting_user"):
                break
            time.sleep(POLL_INTERVAL_SECONDS)
    except KeyboardInterrupt:
        orchestrator.cancel_flow(args.id)
        print("\nCancelled.")
        return 130

    print(snapshot.message)
    return 0 if snapshot.status == "completed" else 1


# =============================================================================
# Server and utilities
# =============================================================================


def cmd_serve(args):
    """Handle serve subcommand."""
    from calhub.admin.main import serve

    settings = load_settings()
    host = args.host or settings.admin.host
    port = args.port or settings.admin.port

    print(f"Starting calhub admin API at http://{host}:{port}")
    print("Press Ctrl+C to stop")
    serve(settings, host=host, port=port)


def cmd_keygen(args):
    """Print a new base64 key for CALHUB_ENCRYPTION_KEY."""
    print(generate_key())


def cmd_version(args):
    """Show version information."""
    print(f"calhub version {__version__}")


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="calhub",
        description="calhub - account configuration and authentication for calendar/email accounts",
    )
    parser.add_argument(
        "--version", "-V", action="store_true", help="Show version and exit"
    )
    parser.add_argument(
        "--log-level", default=None, help="Log level (default: CALHUB_LOG_LEVEL or WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    list_parser = subparsers.add_parser("list", help="List configured accounts")
    list_parser.add_argument("--json", action="store_true", help="Print JSON")
    list_parser.set_defaults(func=cmd_list)

    # add
    add_parser = subparsers.add_parser("add", help="Add an account")
    add_parser.add_argument("id", help="Account id (lowercase slug)")
    add_parser.add_argument("--name", required=True, help="Display name")
    add_parser.add_argument(
        "--provider", required=True, help="microsoft365, outlook.com, google, ics or json"
    )
    add_parser.add_argument(
        "--domain", action="append", default=None, help="E-mail domain (repeatable)"
    )
    add_parser.add_argument("--priority", type=int, default=0, help="Merge priority")
    add_parser.add_argument("--disabled", action="store_true", help="Add the account disabled")
    add_parser.add_argument(
        "--config", action="append", metavar="KEY=VALUE", help="Provider config entry (repeatable)"
    )
    add_parser.set_defaults(func=cmd_add)

    # update
    update_parser = subparsers.add_parser("update", help="Update an account")
    update_parser.add_argument("id", help="Account id")
    update_parser.add_argument("--name", default=None, help="New display name")
    update_parser.add_argument(
        "--domain", action="append", default=None, help="Replace domains (repeatable)"
    )
    update_parser.add_argument("--priority", type=int, default=None, help="New priority")
    toggle = update_parser.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true", help="Enable the account")
    toggle.add_argument("--disable", action="store_true", help="Disable the account")
    update_parser.add_argument(
        "--config", action="append", metavar="KEY=VALUE", help="Set a provider config entry"
    )
    update_parser.add_argument(
        "--unset", action="append", metavar="KEY", help="Remove a provider config entry"
    )
    update_parser.set_defaults(func=cmd_update)

    # remove
    remove_parser = subparsers.add_parser("remove", help="Remove an account")
    remove_parser.add_argument("id", help="Account id")
    remove_parser.add_argument(
        "--logout", action="store_true", help="Also clear cached credentials"
    )
    remove_parser.set_defaults(func=cmd_remove)

    # logout
    logout_parser = subparsers.add_parser("logout", help="Clear cached credentials")
    logout_parser.add_argument("id", help="Account id")
    logout_parser.set_defaults(func=cmd_logout)

    # status
    status_parser = subparsers.add_parser("status", help="Show credential status")
    status_parser.add_argument("id", nargs="?", default=None, help="Account id (default: all)")
    status_parser.add_argument("--json", action="store_true", help="Print JSON")
    status_parser.set_defaults(func=cmd_status)

    # reauth
    reauth_parser = subparsers.add_parser("reauth", help="Sign an account in again")
    reauth_parser.add_argument("id", help="Account id")
    reauth_parser.add_argument(
        "--device-code", action="store_true", help="Use a device code instead of a browser"
    )
    reauth_parser.set_defaults(func=cmd_reauth)

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the admin API server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate a token encryption key")
    keygen_parser.set_defaults(func=cmd_keygen)

    args = parser.parse_args(argv)

    # Handle --version at top level
    if args.version:
        cmd_version(args)
        return

    # If no command given, show help
    if not args.command:
        parser.print_help()
        return

    setup_logging(level=args.log_level or os.environ.get(LOG_LEVEL_ENV, "WARNING"))

    try:
        result = args.func(args)
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        result = 2
    except CalhubError as e:
        print(f"Error: {e}", file=sys.stderr)
        result = 1

    # Commands may return an exit code
    if isinstance(result, int) and result != 0:
        sys.exit(result)


if __name__ == "__main__":
    main()
