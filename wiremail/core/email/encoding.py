"""Content-transfer-encoding and header-word codecs.

Quoted-printable and base64 for bodies, RFC 2047 encoded words for headers.
Decoders never raise: undecodable input is handed back unchanged so one bad
message cannot break a listing.
"""

import base64
import binascii
import codecs
import re

from wiremail.utils.logging import get_logger

from .constants import CRLF, MAX_LINE_LENGTH

logger = get_logger(__name__)

_QP_ESCAPE = re.compile(rb"=([0-9A-Fa-f]{2})")
_QP_SOFT_BREAK = re.compile(r"=\r?\n")
_ENCODED_WORD = re.compile(r"=\?([^?\s]+)\?([BbQq])\?([^?]*)\?=")
_BETWEEN_WORDS = re.compile(r"(\?=)[ \t\r\n]+(=\?)")

# Raw UTF-8 bytes per encoded word, keeps each word under 75 characters
_SUBJECT_CHUNK_BYTES = 45


def _is_qp_literal(char: str) -> bool:
    code = ord(char)
    return (33 <= code <= 126 and char != "=") or char in (" ", "\t")


def _hex_escape(char: str) -> str:
    return "".join(f"={byte:02X}" for byte in char.encode("utf-8"))


def _lookup_charset(charset: str) -> str:
    """Return a Python codec name for ``charset``, latin-1 when unknown."""
    try:
        return codecs.lookup(charset.strip().strip('"')).name

    except (LookupError, AttributeError):
        return "latin-1"


## Quoted-printable


def encode_quoted_printable(text: str) -> str:
    """Encode ``text`` as quoted-printable with lines of at most 76 characters.

    CRLF pairs become hard line breaks. Lone CR or LF characters are escaped so
    the exact input survives a decode. Whitespace that would end a line is
    escaped because transports may strip it.
    """
    lines = []
    current = ""
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char == "\r" and text.startswith("\n", i + 1):
            lines.append(current)
            current = ""
            i += 2
            continue

        if char in (" ", "\t"):
            at_line_end = i + 1 == length or text.startswith(CRLF, i + 1)
            encoded = _hex_escape(char) if at_line_end else char
        elif _is_qp_literal(char):
            encoded = char
        else:
            encoded = _hex_escape(char)

        if len(current) + len(encoded) > MAX_LINE_LENGTH - 1:
            lines.append(current + "=")
            current = encoded
        else:
            current += encoded

        i += 1

    if current or not lines or text.endswith(CRLF):
        lines.append(current)

    return CRLF.join(lines)


def decode_quoted_printable(text: str, charset: str = "utf-8") -> str:
    """Decode quoted-printable ``text``; returns ``text`` unchanged on failure."""
    try:
        unfolded = _QP_SOFT_BREAK.sub("", text)
        raw = _QP_ESCAPE.sub(
            lambda m: bytes([int(m.group(1), 16)]), unfolded.encode("utf-8")
        )
        return raw.decode(_lookup_charset(charset))

    except (UnicodeError, ValueError) as e:
        logger.debug(f"Quoted-printable decode failed, keeping raw content: {e}")
        return text


## Base64


def encode_base64_lines(data: bytes) -> str:
    """Base64-encode ``data`` wrapped at 76 columns with CRLF line breaks."""
    encoded = base64.b64encode(data).decode("ascii")
    return CRLF.join(
        encoded[i : i + MAX_LINE_LENGTH]
        for i in range(0, len(encoded), MAX_LINE_LENGTH)
    )


def decode_base64_text(text: str, charset: str = "utf-8") -> str:
    """Decode a base64 body into text; returns ``text`` unchanged on failure."""
    try:
        compact = re.sub(r"\s", "", text)
        return base64.b64decode(compact, validate=True).decode(
            _lookup_charset(charset)
        )

    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.debug(f"Base64 decode failed, keeping raw content: {e}")
        return text


## RFC 2047 encoded words


def _decode_word(match: re.Match) -> str:
    charset, encoding, payload = match.groups()

    try:
        if encoding.upper() == "B":
            padded = payload + "=" * (-len(payload) % 4)
            raw = base64.b64decode(padded, validate=True)
        else:
            raw = _QP_ESCAPE.sub(
                lambda m: bytes([int(m.group(1), 16)]),
                payload.replace("_", " ").encode("ascii"),
            )

    except (binascii.Error, UnicodeError, ValueError):
        return match.group(0)

    codec = _lookup_charset(charset)
    try:
        return raw.decode(codec)

    except UnicodeDecodeError:
        return raw.decode("latin-1")


def decode_encoded_words(text: str) -> str:
    """Decode every ``=?charset?B|Q?text?=`` word in ``text``.

    Whitespace between two adjacent encoded words is dropped. Words that
    cannot be decoded are left exactly as they were.
    """
    if not text or "=?" not in text:
        return text

    joined = _BETWEEN_WORDS.sub(r"\1\2", text)
    return _ENCODED_WORD.sub(_decode_word, joined)


def encode_subject(subject: str) -> str:
    """Pass ASCII subjects through, otherwise emit UTF-8 base64 encoded words.

    Long subjects are split on character boundaries into several words joined
    by a folded header line.
    """
    if subject.isascii():
        return subject

    words = []
    chunk = ""
    for char in subject:
        if len((chunk + char).encode("utf-8")) > _SUBJECT_CHUNK_BYTES:
            words.append(chunk)
            chunk = char
        else:
            chunk += char
    if chunk:
        words.append(chunk)

    return (CRLF + " ").join(
        f"=?UTF-8?B?{base64.b64encode(word.encode('utf-8')).decode('ascii')}?="
        for word in words
    )
