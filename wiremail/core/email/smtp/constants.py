"""SMTP constants and configuration values."""


class SMTPResponse:
    """SMTP reply codes the client checks for."""

    # 2xx Success
    READY = 220  # Service ready (greeting, STARTTLS go-ahead)
    CLOSING = 221  # Service closing transmission channel
    AUTH_SUCCESS = 235  # Authentication succeeded
    OK = 250  # Requested mail action okay, completed
    USER_NOT_LOCAL = 251  # User not local; will forward

    # 3xx Intermediate
    AUTH_CHALLENGE = 334  # Server challenge during AUTH
    START_MAIL = 354  # Start mail input; end with <CRLF>.<CRLF>


# RCPT TO replies that accept the recipient
RECIPIENT_ACCEPTED = (SMTPResponse.OK, SMTPResponse.USER_NOT_LOCAL)

# EHLO argument when the sender address has no domain
DEFAULT_EHLO_DOMAIN = "localhost"

# Ends the DATA section
DATA_TERMINATOR = "\r\n.\r\n"

# Multipart boundary prefixes
MIXED_BOUNDARY_PREFIX = "----=_Part_"
ALTERNATIVE_BOUNDARY_PREFIX = "----=_Alt_"
