"""Parsing for IMAP FETCH data: parenthesised values, envelopes and addresses.

The reader works on raw bytes so ``{n}`` literal counts line up with what the
server sent. Values come back as:

- ``None`` for NIL
- ``bytes`` for quoted strings and literals
- ``str`` for atoms (numbers, flags, item names such as ``BODY[TEXT]``)
- ``list`` for parenthesised lists

Envelope and address parsing never raise. Malformed data degrades to empty
strings, empty address lists and ``"(No Subject)"``.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from wiremail.core.email.encoding import decode_encoded_words
from wiremail.core.models import EmailAddress, EmailEnvelope, EmailHeader
from wiremail.utils.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = b" \t\r\n"
_LITERAL_HEADER = re.compile(rb"\{(\d+)\}\r\n")
_FETCH_PREFIX = re.compile(rb"^\* (\d+) FETCH ", re.IGNORECASE)

NO_SUBJECT = "(No Subject)"


class SExpressionError(ValueError):
    """Raised by SExpressionReader on malformed input."""


class SExpressionReader:
    """Reads IMAP parenthesised values from a byte string, left to right."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def at_end(self) -> bool:
        self._skip_whitespace()
        return self.pos >= len(self.data)

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.data) and self.data[self.pos] in _WHITESPACE:
            self.pos += 1

    def read_value(self) -> Any:
        """Read the next value of any kind."""
        self._skip_whitespace()
        if self.pos >= len(self.data):
            raise SExpressionError("Unexpected end of data")

        char = self.data[self.pos : self.pos + 1]

        if char == b"(":
            return self.read_list()
        if char == b'"':
            return self._read_quoted()
        if char == b"{":
            return self._read_literal()
        if char == b")":
            raise SExpressionError(f"Unexpected ')' at offset {self.pos}")

        atom = self._read_atom()
        return None if atom.upper() == "NIL" else atom

    def read_list(self) -> List[Any]:
        """Read a parenthesised list, balancing nested lists by depth."""
        self._skip_whitespace()
        if self.data[self.pos : self.pos + 1] != b"(":
            raise SExpressionError(f"Expected '(' at offset {self.pos}")
        self.pos += 1

        items: List[Any] = []
        while True:
            self._skip_whitespace()
            if self.pos >= len(self.data):
                raise SExpressionError("Unterminated list")

            if self.data[self.pos : self.pos + 1] == b")":
                self.pos += 1
                return items

            items.append(self.read_value())

    def _read_quoted(self) -> bytes:
        self.pos += 1
        out = bytearray()

        while self.pos < len(self.data):
            byte = self.data[self.pos]

            if byte == 0x5C and self.pos + 1 < len(self.data):  # backslash
                out.append(self.data[self.pos + 1])
                self.pos += 2
            elif byte == 0x22:  # closing quote
                self.pos += 1
                return bytes(out)
            else:
                out.append(byte)
                self.pos += 1

        raise SExpressionError("Unterminated quoted string")

    def _read_literal(self) -> bytes:
        match = _LITERAL_HEADER.match(self.data, self.pos)
        if not match:
            raise SExpressionError(f"Malformed literal at offset {self.pos}")

        start = match.end()
        end = start + int(match.group(1))
        if end > len(self.data):
            raise SExpressionError("Literal extends past end of data")

        self.pos = end
        return self.data[start:end]

    def _read_atom(self) -> str:
        start = self.pos
        depth = 0

        # Section specs such as BODY[HEADER.FIELDS (TO)] may hold parentheses
        while self.pos < len(self.data):
            char = self.data[self.pos : self.pos + 1]
            if char == b"[":
                depth += 1
            elif char == b"]":
                depth -= 1
            elif depth <= 0 and char in (b" ", b"\t", b"\r", b"\n", b"(", b")"):
                break
            self.pos += 1

        if self.pos == start:
            raise SExpressionError(f"Empty atom at offset {start}")

        return self.data[start : self.pos].decode("utf-8", errors="replace")


## FETCH responses


def parse_fetch_response(raw: bytes) -> Optional[Tuple[int, Dict[str, Any]]]:
    """Split ``* <seq> FETCH (...)`` into its sequence number and item map.

    Item names are upper-cased. Returns None when ``raw`` is not a FETCH
    response.

    Raises:
        SExpressionError: If the item list is malformed
    """
    match = _FETCH_PREFIX.match(raw)
    if not match:
        return None

    items = SExpressionReader(raw, match.end()).read_list()

    attributes: Dict[str, Any] = {}
    for key, value in zip(items[0::2], items[1::2]):
        if isinstance(key, str):
            attributes[key.upper()] = value

    return int(match.group(1)), attributes


def parse_header(raw: bytes) -> Optional[EmailHeader]:
    """Build an EmailHeader from one ``UID FLAGS ENVELOPE RFC822.SIZE`` response.

    Returns None for lines that are not FETCH responses or carry no UID.
    """
    try:
        parsed = parse_fetch_response(raw)

    except SExpressionError as e:
        logger.debug(f"Malformed FETCH response, using fallback parse: {e}")
        return _fallback_header(raw)

    if parsed is None:
        return None

    _, attributes = parsed
    uid = _to_int(attributes.get("UID"))
    if uid is None:
        logger.warning("FETCH response without UID skipped")
        return None

    flags = attributes.get("FLAGS") or []
    return EmailHeader(
        uid=uid,
        flags=[flag for flag in flags if isinstance(flag, str)],
        envelope=parse_envelope(attributes.get("ENVELOPE")),
        size=_to_int(attributes.get("RFC822.SIZE")) or 0,
    )


def _fallback_header(raw: bytes) -> Optional[EmailHeader]:
    text = raw.decode("utf-8", errors="replace")

    uid_match = re.search(r"\bUID (\d+)", text)
    if not uid_match:
        logger.warning("FETCH response without UID skipped")
        return None

    flags_match = re.search(r"FLAGS \(([^)]*)\)", text)
    size_match = re.search(r"RFC822\.SIZE (\d+)", text)

    return EmailHeader(
        uid=int(uid_match.group(1)),
        flags=flags_match.group(1).split() if flags_match else [],
        envelope=EmailEnvelope(),
        size=int(size_match.group(1)) if size_match else 0,
    )


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


## Envelope and addresses


def _text(value: Any) -> str:
    """Envelope string value as text; NIL and lists become empty strings."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return ""


def parse_envelope(fields: Any) -> EmailEnvelope:
    """Map the ENVELOPE 10-tuple onto an EmailEnvelope.

    Order: date, subject, from, sender, reply-to, to, cc, bcc, in-reply-to,
    message-id. Sender, bcc and in-reply-to are not kept. A NIL cc or
    reply-to stays ``None``.
    """
    if not isinstance(fields, list):
        return EmailEnvelope()

    parts = list(fields[:10]) + [None] * max(0, 10 - len(fields))

    return EmailEnvelope(
        date=_text(parts[0]),
        subject=decode_encoded_words(_text(parts[1])) or NO_SUBJECT,
        from_=parse_address_list(parts[2]),
        to=parse_address_list(parts[5]),
        cc=parse_address_list(parts[6]) if parts[6] is not None else None,
        reply_to=parse_address_list(parts[4]) if parts[4] is not None else None,
        message_id=_text(parts[9]),
    )


def parse_address_list(value: Any) -> List[EmailAddress]:
    """Convert a list of (name, route, mailbox, host) tuples to addresses.

    Entries missing a mailbox or host (including group markers) are dropped.
    """
    if not isinstance(value, list):
        return []

    addresses = []
    for entry in value:
        if not isinstance(entry, list) or len(entry) < 4:
            continue

        mailbox = _text(entry[2])
        host = _text(entry[3])
        if not (mailbox and host):
            continue

        addresses.append(
            EmailAddress(
                name=decode_encoded_words(_text(entry[0])),
                email=f"{mailbox}@{host}",
            )
        )

    return addresses
