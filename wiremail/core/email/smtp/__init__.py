from .builder import MessageBuilder
from .client import SMTPClient
from .connection import SMTPConnection, SMTPReply

__all__ = ["MessageBuilder", "SMTPClient", "SMTPConnection", "SMTPReply"]
