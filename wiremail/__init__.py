"""wiremail - IMAP4rev1 and SMTP clients over asyncio streams."""

__version__ = "0.1.0"
