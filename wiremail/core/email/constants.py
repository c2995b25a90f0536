"""Shared constants for email protocols.

Centralised configuration for:
- Wire framing
- Timeout settings that are not per-account

Per-reply timeouts come from the account configuration (``IMAPConfig.timeout``
and ``SMTPConfig.timeout``); the values below cover connection setup and
teardown, which are the same for every account.
"""

CRLF = "\r\n"
CRLF_BYTES = b"\r\n"

# RFC 2045 limit for encoded body lines
MAX_LINE_LENGTH = 76

# Bytes requested per socket read
READ_CHUNK_SIZE = 65536


class Timeouts:
    """Timeout settings for email operations (in seconds)."""

    # IMAP
    IMAP_CONNECT = 30.0
    IMAP_STARTTLS = 30.0
    IMAP_LOGOUT = 5.0

    # SMTP
    SMTP_CONNECT = 30.0
    SMTP_STARTTLS = 30.0
    SMTP_QUIT = 5.0
