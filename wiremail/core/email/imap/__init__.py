from .client import IMAPClient
from .connection import ConnectionState, IMAPConnection
from .protocol import IMAPProtocol

__all__ = ["IMAPClient", "ConnectionState", "IMAPConnection", "IMAPProtocol"]
