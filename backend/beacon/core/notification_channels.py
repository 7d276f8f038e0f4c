"""
Outbound notification channel providers.

send_notification(config, label) dispatches on config["type"]. Only SMTP is
wired for now; the subscriber mail path injects smtp_to / custom_subject /
custom_body / html_body into the channel's stored config.
"""
from __future__ import annotations

import html
import logging
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Dict

from .errors import TransportFailure

logger = logging.getLogger(__name__)

ChannelConfig = Dict[str, Any]
ChannelSender = Callable[[ChannelConfig, str], None]

SMTP_TIMEOUT_SECONDS = 10

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def _from_address(config: ChannelConfig) -> str:
    sender = (config.get("smtp_from") or "").strip()
    if sender:
        return sender
    user = (config.get("smtp_username") or "").strip()
    if user:
        return f"Status Page <{user}>"
    return "Status Page <noreply@localhost>"


def _plain_text(markup: str) -> str:
    """Text alternative for an HTML body."""
    text = re.sub(r"(?i)<br\s*/?>|</(p|div|h[1-6]|li|tr)>", "\n", markup)
    text = html.unescape(_TAG_RE.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _build_message(config: ChannelConfig, label: str) -> MIMEMultipart:
    subject = config.get("custom_subject") or label
    body = config.get("custom_body") or label

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_address(config)
    msg["To"] = config["smtp_to"]
    if config.get("html_body"):
        msg.attach(MIMEText(_plain_text(body), "plain"))
        msg.attach(MIMEText(body, "html"))
    else:
        msg.attach(MIMEText(body, "plain"))
    return msg


def send_smtp(config: ChannelConfig, label: str) -> None:
    host = (config.get("smtp_host") or "").strip()
    to_addr = (config.get("smtp_to") or "").strip()
    if not host:
        raise TransportFailure("SMTP host is not configured")
    if not to_addr:
        raise TransportFailure("No recipient address")

    port = int(config.get("smtp_port") or 587)
    secure = (config.get("smtp_secure") or "").lower()
    user = (config.get("smtp_username") or "").strip()
    password = config.get("smtp_password") or ""
    msg = _build_message(config, label)

    try:
        if secure == "ssl":
            server = smtplib.SMTP_SSL(host, port, timeout=SMTP_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT_SECONDS)
        with server:
            if secure == "starttls":
                server.starttls()
            if user and password:
                server.login(user, password)
            server.sendmail(msg["From"], [to_addr], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise TransportFailure(f"SMTP delivery to {to_addr} failed: {exc}") from exc

    logger.debug("SMTP message sent to %s via %s:%s", to_addr, host, port)


# Channel type -> provider. Add new providers here.
PROVIDERS: Dict[str, ChannelSender] = {
    "smtp": send_smtp,
}

# Types that can carry subscriber email
MAIL_CAPABLE_TYPES = frozenset({"smtp"})


def send_notification(config: ChannelConfig, label: str) -> None:
    channel_type = (config.get("type") or "").lower()
    provider = PROVIDERS.get(channel_type)
    if provider is None:
        raise TransportFailure(f"Unsupported notification type: {channel_type or '<none>'}")
    provider(config, label)
