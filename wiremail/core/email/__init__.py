"""Email protocol handling for IMAP and SMTP.

This module provides clients for email operations:
- IMAP: List mailboxes, fetch headers and bodies, search, flag and delete
- SMTP: Send single messages or batches over one connection
- Templates: Render Markdown into the branded HTML layout

Both clients speak the wire protocols directly over asyncio streams. Every
call opens its own connection, upgrades it with STARTTLS when the server
offers it, authenticates, and always disconnects afterwards.

Usage Examples
----------------

Fetch the newest headers via IMAP:
    >>> from wiremail.core.email import IMAPClient
    >>>
    >>> imap = IMAPClient.from_env()
    >>> page = await imap.fetch_emails("INBOX", start=0, count=20)
    >>> print(f"{len(page.headers)} of {page.total}")

Send a message via SMTP:
    >>> from wiremail.core.email import SMTPClient
    >>> from wiremail.core.models import EmailMessage
    >>>
    >>> smtp = SMTPClient.from_env()
    >>> result = await smtp.send(
    ...     EmailMessage(to="user@example.com", subject="Hi", text="Hello")
    ... )
    >>> print(result.success, result.message_id)

Notes
-----
- All operations are asynchronous and require 'await'
- SMTP sends never raise; failures come back in SendResult
- IMAP calls raise WiremailError subclasses (see wiremail.utils.errors)
- Malformed server data is logged and degraded, never fatal

See Also
--------
- IMAPClient: Mailbox operations
- SMTPClient: Sending operations
- constants: Timeout settings
"""

from .imap import IMAPClient
from .smtp import SMTPClient

__all__ = [
    # IMAP
    "IMAPClient",
    # SMTP
    "SMTPClient",
]
