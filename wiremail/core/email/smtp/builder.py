"""RFC 5322 message composition for outbound mail."""

import re
import uuid
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional

from wiremail.core.email.constants import CRLF
from wiremail.core.email.encoding import (
    encode_base64_lines,
    encode_quoted_printable,
    encode_subject,
)
from wiremail.core.models import EmailAttachment, EmailMessage, Recipients, Sender
from wiremail.utils.errors import ValidationError

from .constants import ALTERNATIVE_BOUNDARY_PREFIX, MIXED_BOUNDARY_PREFIX

_NEWLINES = re.compile(r"\r\n|\r|\n")
_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")
_SPECIALS = re.compile(r'[()<>\[\]:;@\\,."]')


## Addresses


def extract_email(address: str) -> str:
    """Return the bare address from ``Name <addr>`` or ``addr``."""
    match = _ANGLE_ADDRESS.search(address)
    return match.group(1).strip() if match else address.strip()


def _as_list(value: Optional[Recipients]) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def collect_recipients(message: EmailMessage) -> List[str]:
    """Bare addresses of every To, Cc and Bcc recipient, in that order.

    Raises:
        ValidationError: If an address contains CR or LF
    """
    recipients = []
    for field in (message.to, message.cc, message.bcc):
        for address in _as_list(field):
            if "\r" in address or "\n" in address:
                raise ValidationError(
                    "Recipient addresses cannot contain line breaks",
                    details={"recipient": address.splitlines()[0]},
                )
            if address.strip():
                recipients.append(extract_email(address))
    return recipients


def format_display_name(name: str) -> str:
    """Render a display name for an address header.

    Non-ASCII names become an encoded word; ASCII names containing RFC 5322
    specials are sent as a quoted string so they stay one phrase.
    """
    if not name.isascii():
        return encode_subject(name)
    if _SPECIALS.search(name):
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return name


def format_addresses(value: Recipients) -> str:
    return ", ".join(_as_list(value))


def domain_of(address: str) -> str:
    """Domain part of an address, empty when there is none."""
    _, at, domain = address.rpartition("@")
    return domain if at else ""


def make_message_id(sender_email: str) -> str:
    """New ``<uuid@domain>`` message id for ``sender_email``."""
    return f"<{uuid.uuid4()}@{domain_of(sender_email) or 'localhost'}>"


## Builder


class MessageBuilder:
    """Renders an EmailMessage to the text sent after DATA."""

    def __init__(self, sender: Sender):
        """Initialise the builder.

        Args:
            sender: Resolved sender for the From header
        """
        self.sender = sender

    def build(
        self, message: EmailMessage, message_id: str, date: Optional[datetime] = None
    ) -> str:
        """Render headers and body joined with CRLF.

        Args:
            message: Message to render
            message_id: Value for the Message-ID header
            date: Date header value, defaults to now (UTC)

        Raises:
            ValidationError: If a header value contains a line break
        """
        lines = self._headers(message, message_id, date or datetime.now(timezone.utc))

        text, html = message.text, message.html

        if message.attachments:
            boundary = _boundary(MIXED_BOUNDARY_PREFIX)
            lines.append(f'Content-Type: multipart/mixed; boundary="{boundary}"')
            lines.append("")

            if text and html:
                lines.append(f"--{boundary}")
                lines.extend(self._alternative(text, html, _boundary(ALTERNATIVE_BOUNDARY_PREFIX)))
            elif html or text:
                lines.append(f"--{boundary}")
                lines.extend(self._single_part(text, html))

            for attachment in message.attachments:
                lines.append(f"--{boundary}")
                lines.extend(self._attachment(attachment))

            lines.append(f"--{boundary}--")
        elif text and html:
            lines.extend(self._alternative(text, html, _boundary(MIXED_BOUNDARY_PREFIX)))
        else:
            lines.extend(self._single_part(text, html))

        return CRLF.join(lines)

    def _headers(
        self, message: EmailMessage, message_id: str, date: datetime
    ) -> List[str]:
        optional = [
            ("Cc", format_addresses(message.cc) if message.cc else None),
            ("Reply-To", message.reply_to),
            ("In-Reply-To", message.in_reply_to),
            ("References", message.references),
        ]

        _check_header_values(
            [
                ("From", self.sender.name),
                ("From", self.sender.email),
                ("To", format_addresses(message.to)),
                ("Subject", message.subject),
                *optional,
                *message.headers.items(),
            ]
        )

        lines = [
            f"Message-ID: {message_id}",
            f"Date: {format_datetime(date.astimezone(timezone.utc))}",
            f"From: {self._from_header()}",
            f"To: {format_addresses(message.to)}",
        ]
        lines.extend(f"{key}: {value}" for key, value in optional if value)
        lines.append(f"Subject: {encode_subject(message.subject)}")
        lines.append("MIME-Version: 1.0")
        lines.extend(f"{key}: {value}" for key, value in message.headers.items())
        return lines

    def _from_header(self) -> str:
        if not self.sender.name:
            return self.sender.email
        return f"{format_display_name(self.sender.name)} <{self.sender.email}>"

    def _alternative(self, text: str, html: str, boundary: str) -> List[str]:
        lines = [f'Content-Type: multipart/alternative; boundary="{boundary}"', ""]
        lines.append(f"--{boundary}")
        lines.extend(_text_part("text/plain", text))
        lines.append(f"--{boundary}")
        lines.extend(_text_part("text/html", html))
        lines.append(f"--{boundary}--")
        return lines

    def _single_part(self, text: Optional[str], html: Optional[str]) -> List[str]:
        if html:
            return _text_part("text/html", html)
        return _text_part("text/plain", text or "")

    def _attachment(self, attachment: EmailAttachment) -> List[str]:
        filename = _quote_parameter(attachment.filename)
        return [
            f'Content-Type: {attachment.content_type}; name="{filename}"',
            "Content-Transfer-Encoding: base64",
            f'Content-Disposition: attachment; filename="{filename}"',
            "",
            encode_base64_lines(attachment.data),
        ]


def _boundary(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex}"


def _text_part(content_type: str, body: str) -> List[str]:
    return [
        f"Content-Type: {content_type}; charset=utf-8",
        "Content-Transfer-Encoding: quoted-printable",
        "",
        encode_quoted_printable(_NEWLINES.sub(CRLF, body)),
    ]


def _quote_parameter(value: str) -> str:
    value = _NEWLINES.sub(" ", value)
    if not value.isascii():
        return encode_subject(value).replace(CRLF + " ", "")
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _check_header_values(headers) -> None:
    """Reject header names or values that would inject extra header lines."""
    for key, value in headers:
        if not key.strip() or _NEWLINES.search(key) or _NEWLINES.search(value or ""):
            raise ValidationError(
                f"Header {key!r} must not contain line breaks",
                details={"header": key},
            )
