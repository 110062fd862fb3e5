"""
formatter.py -- Terminal and JSON rendering for the expirywatch CLI.

render_* functions return strings; main.py prints them. Status words are
colored by urgency when the terminal supports it.
"""

import json
import os
import re
import sys
from dataclasses import asdict
from typing import Optional

from .classifier import classify
from .models import CertificateInfo, DomainInfo, Status, VerificationResult

W = 60  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

# SGR codes per status, most urgent first
STATUS_COLORS = {
    Status.EXPIRED: "91",  # bright red
    Status.CRITICAL: "93",  # yellow
    Status.WARNING: "94",  # blue
    Status.HEALTHY: "92",  # green
}

_forced: Optional[bool] = None  # set by disable_color(); None = auto-detect


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def disable_color() -> None:
    """Plain output from here on, whatever the terminal or environment says (--no-color)."""
    global _forced
    _forced = False


def color_enabled() -> bool:
    """NO_COLOR (https://no-color.org) beats FORCE_COLOR, which beats TTY detection."""
    if _forced is not None:
        return _forced
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _paint(sgr: str, text: str) -> str:
    return f"\033[{sgr}m{text}\033[0m" if sgr and color_enabled() else text


def _header(title: str) -> list[str]:
    return [f"\n  {_paint('1', title)}", "  " + "─" * (W - 2)]


def _row(label: str, value) -> str:
    return f"  {label:<16}{value}"


def _classified_rows(expiry) -> list[str]:
    c = classify(expiry)
    return [
        _row("Expires", expiry.isoformat()),
        _row("Days left", c.days_remaining),
        _row("Status", _paint(STATUS_COLORS.get(c.status, ""), c.status.value)),
    ]


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def render_domain(name: str, result: VerificationResult[DomainInfo]) -> str:
    lines = _header(name)
    if result.ok:
        lines.append(_row("Registrar", result.info.registrar))
        lines += _classified_rows(result.info.expiry)
    else:
        lines.append(_row("Lookup failed", result.error))
    return "\n".join(lines)


def render_certificate(host: str, result: VerificationResult[CertificateInfo], ip_address: str = "N/A") -> str:
    lines = _header(host)
    if not result.ok:
        lines.append(_row("No certificate", result.error))
        return "\n".join(lines)
    info = result.info
    lines += [
        _row("Issuer", info.issuer),
        _row("Type", info.type.value),
        _row("Managed by", info.managed_by),
        _row("IP address", ip_address),
    ]
    lines += _classified_rows(info.expiry)
    return "\n".join(lines)


def render_stats(stats) -> str:
    """One aligned block for a SweepStats."""
    lines = _header(f"Sweep finished {stats.timestamp}")
    for label in ("owners", "checked", "updated", "skipped", "failed", "alerts_sent", "alerts_failed"):
        lines.append(_row(label.replace("_", " ").capitalize(), getattr(stats, label)))
    return "\n".join(lines)


def to_json(result: VerificationResult) -> str:
    """{"ok": true, "info": {...}} or {"ok": false, "error": {"kind", "message"}}."""
    if result.ok:
        payload = {"ok": True, "info": asdict(result.info)}
    else:
        payload = {"ok": False, "error": {"kind": result.error.kind.value, "message": result.error.message}}
    return json.dumps(payload, indent=2, default=str)
