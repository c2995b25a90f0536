"""
Tests for message body parsing

Tests cover:
- Single-part text and HTML bodies
- Multipart/alternative in either order
- Nested multiparts and the depth limit
- Transfer encodings and charsets
- Section extraction from FETCH responses
"""
import base64

from wiremail.core.email.imap.body import (
    MAX_MULTIPART_DEPTH,
    BodyParser,
    decode_content,
    parse_headers,
    parse_multipart,
)


def _literal(name: str, payload: bytes) -> bytes:
    return f"{name} {{{len(payload)}}}\r\n".encode("ascii") + payload


def _fetch(uid: int, header: bytes, text: bytes) -> bytes:
    return (
        f"* 1 FETCH (UID {uid} ".encode("ascii")
        + _literal("BODY[HEADER]", header)
        + b" "
        + _literal("BODY[TEXT]", text)
        + b")"
    )


PLAIN_PART = (
    "Content-Type: text/plain; charset=utf-8\r\n"
    "Content-Transfer-Encoding: quoted-printable\r\n"
    "\r\n"
    "Caf=C3=A9 menu\r\n"
)

HTML_PART = (
    "Content-Type: text/html; charset=utf-8\r\n"
    "\r\n"
    "<p>Hello</p>\r\n"
)


def _multipart(boundary: str, *parts: str) -> str:
    body = "".join(f"--{boundary}\r\n{part}" for part in parts)
    return body + f"--{boundary}--\r\n"


class TestParseHeaders:
    """Tests for header block parsing"""

    def test_folded_and_encoded_headers(self):
        headers = parse_headers(
            "Subject: =?UTF-8?Q?Caf=C3=A9?=\r\n"
            "Content-Type: multipart/alternative;\r\n"
            '\tboundary="abc"\r\n'
            "X-Empty:\r\n"
        )

        assert headers["subject"] == "Café"
        assert headers["content-type"] == 'multipart/alternative; boundary="abc"'
        assert headers["x-empty"] == ""

    def test_repeated_header_keeps_last(self):
        headers = parse_headers("Received: one\r\nReceived: two\r\n")

        assert headers["received"] == "two"


class TestDecodeContent:
    """Tests for transfer decoding"""

    def test_base64_with_charset(self):
        encoded = base64.b64encode("Grüße".encode("iso-8859-1")).decode("ascii")
        headers = {
            "content-transfer-encoding": "base64",
            "content-type": "text/plain; charset=ISO-8859-1",
        }

        assert decode_content(encoded, headers) == "Grüße"

    def test_unknown_encoding_passes_through(self):
        assert decode_content("raw =41", {"content-transfer-encoding": "8bit"}) == "raw =41"

    def test_bad_base64_returns_input(self):
        headers = {"content-transfer-encoding": "base64"}

        assert decode_content("not base64 !!!", headers) == "not base64 !!!"


class TestParseMultipart:
    """Tests for multipart traversal"""

    def test_alternative_text_then_html(self):
        text, html = parse_multipart(_multipart("b1", PLAIN_PART, HTML_PART), "b1")

        assert text == "Café menu"
        assert html == "<p>Hello</p>"

    def test_alternative_html_then_text(self):
        """Order in the payload does not matter"""
        text, html = parse_multipart(_multipart("b1", HTML_PART, PLAIN_PART), "b1")

        assert text == "Café menu"
        assert html == "<p>Hello</p>"

    def test_first_part_of_each_type_wins(self):
        second = "Content-Type: text/plain\r\n\r\nsecond\r\n"
        text, _ = parse_multipart(_multipart("b1", PLAIN_PART, second), "b1")

        assert text == "Café menu"

    def test_attachment_part_not_used_as_body(self):
        attachment = (
            "Content-Type: text/plain\r\n"
            "Content-Disposition: attachment; filename=log.txt\r\n"
            "\r\n"
            "log line\r\n"
        )

        text, html = parse_multipart(_multipart("b1", attachment, HTML_PART), "b1")

        assert text is None
        assert html == "<p>Hello</p>"

    def test_nested_alternative_inside_mixed(self):
        inner = _multipart("inner", PLAIN_PART, HTML_PART)
        attachment = (
            "Content-Type: text/plain; name=notes.txt\r\n"
            "Content-Disposition: attachment; filename=notes.txt\r\n"
            "\r\n"
            "attached text\r\n"
        )
        outer = _multipart(
            "outer",
            attachment,
            f'Content-Type: multipart/alternative; boundary="inner"\r\n\r\n{inner}',
        )

        text, html = parse_multipart(outer, "outer")

        assert text == "Café menu"
        assert html == "<p>Hello</p>"

    def test_depth_limit(self):
        """Parts nested deeper than the limit are skipped"""
        content = PLAIN_PART
        boundary = "leaf"
        for level in range(MAX_MULTIPART_DEPTH + 1):
            content = _multipart(boundary, content)
            wrapper_boundary = f"level{level}"
            content = (
                f'Content-Type: multipart/mixed; boundary="{boundary}"\r\n\r\n{content}'
            )
            boundary = wrapper_boundary

        text, html = parse_multipart(_multipart(boundary, content), boundary)

        assert text is None
        assert html is None

    def test_within_depth_limit(self):
        content = PLAIN_PART
        boundary = "leaf"
        for level in range(MAX_MULTIPART_DEPTH - 2):
            content = _multipart(boundary, content)
            content = (
                f'Content-Type: multipart/mixed; boundary="{boundary}"\r\n\r\n{content}'
            )
            boundary = f"level{level}"

        text, _ = parse_multipart(_multipart(boundary, content), boundary)

        assert text == "Café menu"

    def test_part_without_headers_skipped(self):
        text, html = parse_multipart("--b1\r\njust text\r\n--b1--\r\n", "b1")

        assert text is None
        assert html is None


class TestBodyParser:
    """Tests for full body parsing from FETCH responses"""

    def test_plain_message(self):
        header = b"Subject: Hi\r\nContent-Type: text/plain; charset=utf-8\r\n\r\n"
        body = BodyParser.parse_response(5, [_fetch(5, header, b"Hello\r\nthere\r\n")])

        assert body.uid == 5
        assert body.text == "Hello\r\nthere\r\n"
        assert body.html is None
        assert body.headers["subject"] == "Hi"

    def test_html_message(self):
        header = b"Content-Type: text/html\r\n\r\n"
        body = BodyParser.parse_response(6, [_fetch(6, header, b"<b>x</b>")])

        assert body.html == "<b>x</b>"
        assert body.text is None

    def test_multipart_message(self):
        header = b'Content-Type: multipart/alternative; boundary="b1"\r\n\r\n'
        payload = _multipart("b1", PLAIN_PART, HTML_PART).encode("utf-8")
        body = BodyParser.parse_response(7, [_fetch(7, header, payload)])

        assert body.text == "Café menu"
        assert body.html == "<p>Hello</p>"

    def test_multipart_without_boundary(self):
        header = b"Content-Type: multipart/mixed\r\n\r\n"
        body = BodyParser.parse_response(8, [_fetch(8, header, b"whatever")])

        assert body.text is None
        assert body.html is None

    def test_missing_content_type_defaults_to_text(self):
        body = BodyParser.parse_response(9, [_fetch(9, b"Subject: x\r\n\r\n", b"plain")])

        assert body.text == "plain"

    def test_no_sections(self):
        body = BodyParser.parse_response(10, [b"* 1 FETCH (UID 10 FLAGS (\\Seen))"])

        assert body.text is None
        assert body.html is None
        assert body.headers == {}

    def test_quoted_text_section(self):
        raw = b'* 1 FETCH (UID 11 BODY[HEADER] {2}\r\n\r\n BODY[TEXT] "short")'
        body = BodyParser.parse_response(11, [raw])

        assert body.text == "short"

    def test_malformed_response_falls_back_to_scan(self):
        header = b"Content-Type: text/plain\r\n\r\n"
        raw = _fetch(12, header, b"scanned")[:-1] + b' "unterminated'
        body = BodyParser.parse_response(12, [raw])

        assert body.text == "scanned"
