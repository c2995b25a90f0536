"""
Tests for transfer encodings and encoded words

Tests cover:
- Quoted-printable encode and decode
- Base64 line wrapping
- RFC 2047 decode and subject encoding
"""
import base64

import pytest

from wiremail.core.email.encoding import (
    decode_base64_text,
    decode_encoded_words,
    decode_quoted_printable,
    encode_base64_lines,
    encode_quoted_printable,
    encode_subject,
)


class TestQuotedPrintable:
    """Tests for quoted-printable"""

    @pytest.mark.parametrize(
        "text",
        [
            "plain ascii",
            "a = b",
            "line one\r\nline two",
            "lone\rcarriage and lone\nfeed",
            "trailing space \r\nnext",
            "ünïcödé ✓ 日本語",
            "x" * 200,
            "é" * 60,
            "",
        ],
    )
    def test_round_trip(self, text):
        assert decode_quoted_printable(encode_quoted_printable(text)) == text

    def test_lines_within_limit(self):
        encoded = encode_quoted_printable("word " * 100 + "é" * 100)

        assert all(len(line) <= 76 for line in encoded.split("\r\n"))

    def test_equals_and_non_ascii_escaped(self):
        assert encode_quoted_printable("a=é") == "a=3D=C3=A9"

    def test_trailing_whitespace_escaped(self):
        assert encode_quoted_printable("end ") == "end=20"

    def test_decode_soft_breaks(self):
        assert decode_quoted_printable("long=\r\nline=\nend") == "longlineend"

    def test_decode_latin1_charset(self):
        assert decode_quoted_printable("caf=E9", "iso-8859-1") == "café"

    def test_decode_invalid_utf8_returns_input(self):
        assert decode_quoted_printable("bad=FF", "utf-8") == "bad=FF"


class TestBase64:
    """Tests for base64 helpers"""

    def test_lines_wrapped_at_76(self):
        encoded = encode_base64_lines(bytes(range(256)) * 2)
        lines = encoded.split("\r\n")

        assert all(len(line) == 76 for line in lines[:-1])
        assert base64.b64decode("".join(lines)) == bytes(range(256)) * 2

    def test_decode_text_ignores_whitespace(self):
        assert decode_base64_text("aGVs\r\nbG8=") == "hello"


class TestEncodedWords:
    """Tests for RFC 2047"""

    def test_base64_word(self):
        assert decode_encoded_words("=?UTF-8?B?UsOpc3Vtw6k=?=") == "Résumé"

    def test_q_word_with_underscores(self):
        assert decode_encoded_words("=?iso-8859-1?q?caf=E9_cr=E8me?=") == "café crème"

    def test_adjacent_words_join_without_space(self):
        assert decode_encoded_words("=?UTF-8?Q?a?= =?UTF-8?Q?b?=") == "ab"

    def test_mixed_with_plain_text(self):
        assert decode_encoded_words("Re: =?UTF-8?Q?Caf=C3=A9?= today") == "Re: Café today"

    def test_unpadded_base64(self):
        assert decode_encoded_words("=?UTF-8?B?aGk?=") == "hi"

    def test_undecodable_word_left_as_is(self):
        assert decode_encoded_words("=?UTF-8?B?!!!?=") == "=?UTF-8?B?!!!?="

    def test_unknown_charset_falls_back(self):
        assert decode_encoded_words("=?x-unknown?Q?caf=E9?=") == "café"

    def test_plain_text_unchanged(self):
        assert decode_encoded_words("Hello") == "Hello"
        assert decode_encoded_words("") == ""


class TestEncodeSubject:
    """Tests for subject encoding"""

    def test_ascii_passes_through(self):
        assert encode_subject("Hello World") == "Hello World"

    def test_non_ascii_round_trip(self):
        encoded = encode_subject("Résumé")

        assert encoded.startswith("=?UTF-8?B?")
        assert decode_encoded_words(encoded) == "Résumé"

    def test_long_subject_split_into_words(self):
        subject = "Ünïcödé " * 20
        encoded = encode_subject(subject)
        words = encoded.split("\r\n ")

        assert len(words) > 1
        assert all(len(word) <= 75 for word in words)
        assert decode_encoded_words(encoded) == subject
