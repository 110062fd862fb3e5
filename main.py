#!/usr/bin/env python3
"""
ExpiryWatch -- domain and TLS certificate expiry checks from the command line.

Usage:
  python main.py check-domain example.com
  python main.py check-ssl example.com
  python main.py check-ssl example.com --json
  python main.py sweep
  python main.py sweep --owner 3

Configuration comes from the environment / .env file (see core/config.py):
DATABASE_URL, WHOIS_TIMEOUT, TLS_TIMEOUT, DOMAIN_FALLBACK, ALERT_CATCH_UP, ...
"""

import argparse
import logging
import sys

from auth.store import UserStore
from core.config import get_settings
from core.errors import SweepInProgress
from core.formatter import disable_color, render_certificate, render_domain, render_stats, to_json
from core.mailer import Mailer
from core.sweep import AuditService
from core.verifier import Verifier, normalize_host
from tracker.store import TrackerStore


def _check_domain(args: argparse.Namespace, verifier: Verifier) -> int:
    name = normalize_host(args.name)
    result = verifier.verify_domain(name)
    print(to_json(result) if args.json else render_domain(name, result))
    return 0 if result.ok else 1


def _check_ssl(args: argparse.Namespace, verifier: Verifier) -> int:
    host = normalize_host(args.host)
    result = verifier.verify_certificate(host)
    if args.json:
        print(to_json(result))
    else:
        print(render_certificate(host, result, verifier.resolve_ip(host) if result.ok else "N/A"))
    return 0 if result.ok else 1


def _sweep(args: argparse.Namespace, verifier: Verifier) -> int:
    """Run one sweep against the configured database, then close the stores."""
    settings = get_settings()
    store = TrackerStore(settings.database_url)
    user_store = UserStore(settings.database_url)
    try:
        audit = AuditService(
            store=store,
            user_store=user_store,
            verifier=verifier,
            mailer=Mailer(timeout=settings.smtp_timeout, sender_name=settings.mail_sender_name),
            settings=settings,
        )
        if args.owner is not None:
            if user_store.get_by_id(args.owner) is None:
                print(f"  [!] No owner with id {args.owner}.")
                return 1
            stats = audit.sync_owner(args.owner)
        else:
            stats = audit.sweep_all()
    except SweepInProgress as e:
        print(f"  [!] {e}")
        return 1
    finally:
        store.close()
        user_store.close()
    print(render_stats(stats))
    return 0 if stats.failed == 0 else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="expirywatch",
        description="Domain registration and TLS certificate expiry checks.",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI color codes in output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log lookups and sweep progress to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p_domain = sub.add_parser("check-domain", help="Look up a domain's registrar and expiry via WHOIS/RDAP")
    p_domain.add_argument("name", help="Domain name, e.g. example.com")
    p_domain.add_argument("--json", action="store_true", help="Output structured JSON")
    p_domain.set_defaults(handler=_check_domain)

    p_ssl = sub.add_parser("check-ssl", help="Read the TLS certificate served on HOST:443")
    p_ssl.add_argument("host", help="Host to connect to")
    p_ssl.add_argument("--json", action="store_true", help="Output structured JSON")
    p_ssl.set_defaults(handler=_check_ssl)

    p_sweep = sub.add_parser("sweep", help="Re-verify tracked entities and send due alerts")
    p_sweep.add_argument("--owner", type=int, metavar="ID", help="Sweep a single owner instead of everyone")
    p_sweep.set_defaults(handler=_sweep)

    args = parser.parse_args(argv)

    if args.no_color:
        disable_color()
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO) if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    return args.handler(args, Verifier(settings))


if __name__ == "__main__":
    sys.exit(main())
