from __future__ import annotations

import logging
import mimetypes
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol

from .config import Config
from .email_utils import extract_address, is_valid_email
from .errors import SendError
from .models import MailMessage

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
DEFAULT_SMTP_PORT = 25


class MailTransport(Protocol):
    def send(self, message: MailMessage) -> None: ...


def _from_header(message: MailMessage) -> str:
    """Use the display name when given, else the bare sender address."""
    if message.display_name:
        return formataddr((message.display_name, message.sender))
    return message.sender


def build_message(message: MailMessage) -> EmailMessage:
    """Render a MailMessage into a MIME message ready for SMTP.

    Args:
        message: Message fields and attachment paths.

    Returns:
        EmailMessage with headers, body and attachments set.
    """
    msg = EmailMessage()
    msg["From"] = _from_header(message)
    if message.to:
        msg["To"] = ", ".join(message.to)
    if message.cc:
        msg["Cc"] = ", ".join(message.cc)
    msg["Subject"] = message.subject

    subtype = message.content_type.split("/", 1)[-1] or "plain"
    msg.set_content(message.body, subtype=subtype)

    for path in message.attachments:
        ctype, encoding = mimetypes.guess_type(path.name)
        if ctype is None or encoding is not None:
            ctype = "application/octet-stream"
        maintype, subtype = ctype.split("/", 1)
        msg.add_attachment(
            path.read_bytes(),
            maintype=maintype,
            subtype=subtype,
            filename=path.name,
        )
    return msg


def open_smtp(config: Config) -> smtplib.SMTP:
    """Connect and authenticate to the configured SMTP server.

    Port 465 uses implicit TLS; other ports upgrade with STARTTLS when the
    server offers it.
    """
    port = config.port or DEFAULT_SMTP_PORT
    if port == IMPLICIT_TLS_PORT:
        smtp = smtplib.SMTP_SSL(config.host, port, timeout=config.timeout)
    else:
        smtp = smtplib.SMTP(config.host, port, timeout=config.timeout)
        smtp.ehlo()
        if smtp.has_extn("starttls"):
            smtp.starttls(context=ssl.create_default_context())
            smtp.ehlo()
    if config.user:
        smtp.login(config.user, config.password)
    return smtp


class SmtpTransport:
    """Deliver MailMessages over SMTP, one connection per message."""

    def __init__(self, config: Config):
        self._config = config

    def send(self, message: MailMessage) -> None:
        msg = build_message(message)
        envelope = [extract_address(address) for address in message.recipients()]
        logger.info(
            f"Sending '{message.subject}' to {len(message.to)} to / {len(message.cc)} cc "
            f"via {self._config.host}:{self._config.port}"
        )
        try:
            with open_smtp(self._config) as smtp:
                refused = smtp.send_message(
                    msg, from_addr=message.sender, to_addrs=envelope
                )
        except (smtplib.SMTPException, OSError) as exc:
            raise SendError(f"send failed: {exc}") from exc

        if refused:
            logger.warning(f"Server refused some recipients: {', '.join(sorted(refused))}")


def probe_recipients(config: Config, addresses: list[str]) -> list[str]:
    """Guess which recipients caused a failed send.

    Each address is offered alone with MAIL FROM / RCPT TO and the session
    reset afterwards. Invalid addresses and those drawing a 5xx reply are
    returned. SMTP replies are ambiguous (servers may accept every RCPT and
    bounce later), so the result is a diagnostic hint only. A connection
    failure ends the probe and reports only the format failures.
    """
    suspects = {address for address in addresses if not is_valid_email(address)}
    candidates = [address for address in addresses if address not in suspects]

    if candidates:
        try:
            with open_smtp(config) as smtp:
                for address in candidates:
                    smtp.mail(config.sender)
                    code, reply = smtp.rcpt(extract_address(address))
                    smtp.rset()
                    if 500 <= code < 600:
                        logger.info(f"RCPT {address} rejected: {code} {reply!r}")
                        suspects.add(address)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(f"Recipient probe aborted: {exc}")

    return [address for address in addresses if address in suspects]
