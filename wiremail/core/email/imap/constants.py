"""IMAP constants and configuration values."""


class IMAPResponse:
    """Standard IMAP response codes."""

    OK = "OK"
    NO = "NO"
    BAD = "BAD"

    STATUSES = (OK, NO, BAD)


class IMAPFlags:
    """Standard IMAP flags."""

    SEEN = "\\Seen"  # Read/unread status
    DELETED = "\\Deleted"  # Marked for deletion


class IMAPFolders:
    """Standard IMAP folder names."""

    INBOX = "INBOX"


# Client tag format, e.g. A0001
TAG_FORMAT = "A{:04d}"

# Fetch items for one row of a mailbox listing
HEADER_FETCH_ITEMS = "(UID FLAGS ENVELOPE RFC822.SIZE)"

# Fetch items for a full message body
BODY_FETCH_ITEMS = "(BODY[HEADER] BODY[TEXT])"

# UIDs per UID FETCH command
UID_FETCH_BATCH_SIZE = 100

# Page size for mailbox listings
DEFAULT_PAGE_SIZE = 20
