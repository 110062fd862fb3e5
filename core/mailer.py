"""
core/mailer.py -- Outbound alert delivery over SMTP.

The transport skips peer-certificate validation on purpose: many owners point
this at a self-signed internal relay. That is a deliberate leniency on the
mail channel only; it never affects how alerts are decided.

send() never raises. Connection refused, auth rejected and timeouts all come
back as MailResult(success=False) so a failed delivery can be logged to the
alert ledger without aborting the sweep that triggered it.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

import requests

from core.errors import DeliveryFailure
from core.models import MailResult
from core.notifications import SMTPCredentials, SMTPProfile

logger = logging.getLogger("expirywatch.mailer")

_ETHEREAL_HOST_SUFFIX = "ethereal.email"
_ETHEREAL_INBOX_URL = "https://ethereal.email/messages"


def _lenient_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class Mailer:
    def __init__(self, timeout: float = 10.0, sender_name: str = "ExpiryWatch Alerts") -> None:
        self.timeout = timeout
        self.sender_name = sender_name

    def send(self, profile: SMTPProfile, subject: str, body: str) -> MailResult:
        """Deliver one plain-text message to profile.to_address."""
        if not profile.is_deliverable:
            return MailResult(success=False, message="SMTP profile is missing host, sender or recipient.")
        try:
            msg = self._compose(profile, subject, body)
            self._deliver(profile, msg)
        except DeliveryFailure as e:
            logger.warning("Mail to %s via %s:%d failed: %s", profile.to_address, profile.host, profile.port, e)
            return MailResult(success=False, message=str(e))
        logger.info("Mail sent to %s via %s:%d", profile.to_address, profile.host, profile.port)
        preview = _ETHEREAL_INBOX_URL if profile.host.endswith(_ETHEREAL_HOST_SUFFIX) else None
        return MailResult(success=True, message="Message sent.", preview_url=preview)

    def _compose(self, profile: SMTPProfile, subject: str, body: str) -> EmailMessage:
        # Header values containing CR or LF are refused by the email package.
        try:
            msg = EmailMessage()
            msg["Subject"] = subject
            msg["From"] = formataddr((self.sender_name, profile.from_address))
            msg["To"] = profile.to_address
            msg.set_content(body)
        except ValueError as e:
            raise DeliveryFailure(f"message rejected: {e}") from e
        return msg

    def _deliver(self, profile: SMTPProfile, msg: EmailMessage) -> None:
        context = _lenient_context()
        try:
            if profile.use_tls:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    profile.host, profile.port, timeout=self.timeout, context=context
                )
            else:
                server = smtplib.SMTP(profile.host, profile.port, timeout=self.timeout)
            with server:
                server.ehlo()
                if not profile.use_tls and server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
                if profile.auth_required and profile.credentials is not None:
                    server.login(profile.credentials.username, profile.credentials.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise DeliveryFailure(f"authentication rejected ({e.smtp_code})") from e
        # ValueError covers UnicodeEncodeError from login() with non-ASCII credentials
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise DeliveryFailure(f"{type(e).__name__}: {e}") from e


def create_test_account(api_url: str, timeout: float = 10.0) -> Optional[SMTPProfile]:
    """Provision a disposable Ethereal SMTP account for trying out settings.

    Returns an SMTPProfile with credentials filled in (sender and recipient
    left empty for the caller), or None when the account service is down.
    """
    try:
        resp = requests.post(api_url, json={"requestor": "expirywatch", "version": "1.0"}, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Test account provisioning failed: %s", e)
        return None
    if data.get("status") != "success":
        logger.warning("Test account service answered %r", data.get("error") or data.get("status"))
        return None
    smtp = data.get("smtp") or {}
    return SMTPProfile(
        host=smtp.get("host", ""),
        port=int(smtp.get("port", 587)),
        use_tls=bool(smtp.get("secure", False)),
        auth_required=True,
        credentials=SMTPCredentials(username=data["user"], password=data["pass"]),
    )
