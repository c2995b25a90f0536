"""Message body parsing for ``UID FETCH uid (BODY[HEADER] BODY[TEXT])``."""

import re
from typing import Dict, List, Optional, Tuple

from wiremail.core.email.encoding import (
    decode_base64_text,
    decode_encoded_words,
    decode_quoted_printable,
)
from wiremail.core.models import EmailBody
from wiremail.utils.logging import get_logger

from .envelope import SExpressionError, parse_fetch_response

logger = get_logger(__name__)

# Nested multiparts deeper than this are skipped
MAX_MULTIPART_DEPTH = 10

_BOUNDARY = re.compile(r'boundary="?([^";]+)"?', re.IGNORECASE)
_CHARSET = re.compile(r'charset="?([^";\s]+)"?', re.IGNORECASE)
_HEADER_LINE_SPLIT = re.compile(r"\r?\n(?=[^\t ])")
_FOLDED_WHITESPACE = re.compile(r"\r?\n[\t ]+")
_LITERAL_SECTION = r"BODY\[{}\]\s*\{{(\d+)\}}\r\n"
_QUOTED_TEXT = re.compile(rb'BODY\[TEXT\]\s+"([^"]*)"')


class BodyParser:
    """Turn fetched header and text sections into an EmailBody."""

    @staticmethod
    def parse_response(uid: int, untagged: List[bytes]) -> EmailBody:
        """Parse the untagged responses of a body fetch.

        Args:
            uid: UID the body was fetched for
            untagged: Raw untagged responses of the fetch command

        Returns:
            EmailBody, with text and html unset when nothing usable was found
        """
        header_section, text_section = BodyParser.extract_sections(untagged)
        return BodyParser.parse(uid, header_section, text_section)

    @staticmethod
    def extract_sections(
        untagged: List[bytes],
    ) -> Tuple[Optional[bytes], Optional[bytes]]:
        """Return the raw ``BODY[HEADER]`` and ``BODY[TEXT]`` payloads."""
        header_section = text_section = None

        for raw in untagged:
            try:
                parsed = parse_fetch_response(raw)

            except SExpressionError as e:
                logger.debug(f"Malformed body FETCH response, scanning for literals: {e}")
                return BodyParser._scan_sections(b"\r\n".join(untagged))

            if parsed is None:
                continue

            _, attributes = parsed
            if header_section is None and isinstance(attributes.get("BODY[HEADER]"), bytes):
                header_section = attributes["BODY[HEADER]"]
            if text_section is None and isinstance(attributes.get("BODY[TEXT]"), bytes):
                text_section = attributes["BODY[TEXT]"]

        return header_section, text_section

    @staticmethod
    def _scan_sections(data: bytes) -> Tuple[Optional[bytes], Optional[bytes]]:
        sections = []
        for name in ("HEADER", "TEXT"):
            match = re.search(_LITERAL_SECTION.format(name).encode("ascii"), data)
            if match:
                start = match.end()
                sections.append(data[start : start + int(match.group(1))])
            elif name == "TEXT":
                quoted = _QUOTED_TEXT.search(data)
                sections.append(quoted.group(1) if quoted else None)
            else:
                sections.append(None)

        return sections[0], sections[1]

    @staticmethod
    def parse(
        uid: int, header_section: Optional[bytes], text_section: Optional[bytes]
    ) -> EmailBody:
        """Decode a message from its header block and body text."""
        body = EmailBody(uid=uid)

        if header_section is not None:
            body.headers = parse_headers(_to_text(header_section))

        if text_section is None:
            return body

        content = _to_text(text_section)
        content_type = body.headers.get("content-type", "").lower()

        if "multipart/" in content_type:
            boundary = _BOUNDARY.search(body.headers["content-type"])
            if boundary:
                body.text, body.html = parse_multipart(content, boundary.group(1))
            else:
                logger.warning(f"Multipart message {uid} has no boundary")
        elif "text/html" in content_type:
            body.html = decode_content(content, body.headers)
        else:
            body.text = decode_content(content, body.headers)

        return body


## Helpers


def _to_text(section: bytes) -> str:
    return section.decode("utf-8", errors="replace")


def parse_headers(header_text: str) -> Dict[str, str]:
    """Unfold a header block into a dict with lower-cased keys.

    Values are trimmed, folded whitespace collapses to one space and RFC 2047
    words are decoded. A repeated header keeps its last value.
    """
    headers: Dict[str, str] = {}

    for line in _HEADER_LINE_SPLIT.split(header_text):
        key, separator, value = line.partition(":")
        key = key.strip().lower()
        if not separator or not key:
            continue

        headers[key] = decode_encoded_words(_FOLDED_WHITESPACE.sub(" ", value.strip()))

    return headers


def decode_content(content: str, headers: Dict[str, str]) -> str:
    """Undo the part's Content-Transfer-Encoding; unknown encodings pass through."""
    encoding = headers.get("content-transfer-encoding", "").strip().lower()
    charset_match = _CHARSET.search(headers.get("content-type", ""))
    charset = charset_match.group(1) if charset_match else "utf-8"

    if encoding == "base64":
        return decode_base64_text(content, charset)
    if encoding == "quoted-printable":
        return decode_quoted_printable(content, charset)

    return content


def _split_part(part: str) -> Optional[Tuple[Dict[str, str], str]]:
    """Split one multipart chunk into its headers and body."""
    header_end = part.find("\r\n\r\n")
    separator_length = 4
    if header_end == -1:
        header_end = part.find("\n\n")
        separator_length = 2
    if header_end == -1:
        return None

    part_body = part[header_end + separator_length :]

    # The line break before the next delimiter belongs to the delimiter
    if part_body.endswith("\r\n"):
        part_body = part_body[:-2]
    elif part_body.endswith("\n"):
        part_body = part_body[:-1]

    return parse_headers(part[:header_end]), part_body


def _split_multipart(content: str, boundary: str) -> List[str]:
    return [
        part
        for part in content.split(f"--{boundary}")
        if part.strip() not in ("", "--")
    ]


def parse_multipart(
    content: str, boundary: str
) -> Tuple[Optional[str], Optional[str]]:
    """Find the first text/plain and first text/html part in a multipart tree.

    Parts are visited in document order through an explicit work stack.
    Attachments are not considered, and nesting deeper than
    MAX_MULTIPART_DEPTH is skipped.

    Returns:
        Tuple of (text, html); either may be None
    """
    text: Optional[str] = None
    html: Optional[str] = None

    stack = [(part, 1) for part in reversed(_split_multipart(content, boundary))]

    while stack and (text is None or html is None):
        part, depth = stack.pop()

        split = _split_part(part)
        if split is None:
            continue

        part_headers, part_body = split
        content_type = part_headers.get("content-type", "").lower()
        disposition = part_headers.get("content-disposition", "").lower()

        if disposition.startswith("attachment"):
            continue

        if "text/plain" in content_type:
            if text is None:
                text = decode_content(part_body, part_headers)
        elif "text/html" in content_type:
            if html is None:
                html = decode_content(part_body, part_headers)
        elif "multipart/" in content_type:
            nested_boundary = _BOUNDARY.search(part_headers["content-type"])
            if not nested_boundary:
                continue

            if depth >= MAX_MULTIPART_DEPTH:
                logger.warning(
                    "Skipping multipart nested too deeply",
                    extra={"depth": depth + 1, "limit": MAX_MULTIPART_DEPTH},
                )
                continue

            nested = _split_multipart(part_body, nested_boundary.group(1))
            stack.extend((child, depth + 1) for child in reversed(nested))

    return text, html
