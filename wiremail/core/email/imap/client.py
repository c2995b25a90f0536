"""IMAP client facade: one connection per call."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

from wiremail.core.models import EmailBody, FetchResult, MailboxInfo
from wiremail.utils.config import IMAPConfig
from wiremail.utils.errors import MissingConfigError, WiremailError
from wiremail.utils.logging import async_log_call, get_logger

from .connection import IMAPConnection
from .constants import DEFAULT_PAGE_SIZE, IMAPFolders
from .protocol import IMAPProtocol

logger = get_logger(__name__)


class IMAPClient:
    """Reads a mailbox over IMAP.

    Every public method opens its own connection, authenticates, runs its
    commands and disconnects, on failure as well as success. Nothing is
    shared between calls.
    """

    def __init__(
        self,
        config: IMAPConfig,
        connection_factory: Callable[[IMAPConfig], IMAPConnection] = IMAPConnection,
    ):
        """Initialise IMAP client.

        Args:
            config: IMAP account configuration
            connection_factory: Builds the connection for each call
        """
        self.config = config
        self._connection_factory = connection_factory

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IMAPClient":
        """Build a client from ``IMAP_*`` (falling back to ``SMTP_*``) variables."""
        return cls(IMAPConfig.from_env(environ))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[IMAPProtocol]:
        """Context manager for one connect, authenticate, disconnect cycle.

        Yields:
            IMAPProtocol bound to the authenticated connection
        """
        if not self.config.host:
            raise MissingConfigError(
                "IMAP host is not configured", details={"setting": "IMAP_HOST"}
            )

        async with self._connection_factory(self.config) as connection:
            yield IMAPProtocol(connection)

    ## Mailbox operations

    @async_log_call
    async def list_mailboxes(self) -> List[str]:
        async with self.session() as protocol:
            return await protocol.list_mailboxes()

    @async_log_call
    async def get_mailbox_info(self, mailbox: str = IMAPFolders.INBOX) -> MailboxInfo:
        async with self.session() as protocol:
            return await protocol.select_mailbox(mailbox)

    @async_log_call
    async def fetch_emails(
        self,
        mailbox: str = IMAPFolders.INBOX,
        start: int = 0,
        count: int = DEFAULT_PAGE_SIZE,
        filter_by_allowed_recipients: bool = True,
    ) -> FetchResult:
        """Fetch one page of headers, newest first.

        Args:
            mailbox: Mailbox to read
            start: Number of newest messages to skip
            count: Page size
            filter_by_allowed_recipients: Only list messages sent to an address
                in ``config.allowed_recipients``

        Returns:
            FetchResult whose ``total`` counts every candidate message
        """
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)

            if not filter_by_allowed_recipients:
                return await protocol.fetch_headers(start, count)

            uids = await protocol.search_by_recipients(self.config.allowed_recipients)
            if not uids:
                return FetchResult(headers=[], total=0)

            headers = await protocol.fetch_headers_by_uids(uids[start : start + count])
            headers.sort(key=lambda header: header.uid, reverse=True)

            logger.info(
                "Fetched mailbox page",
                extra={"mailbox": mailbox, "count": len(headers), "total": len(uids)},
            )
            return FetchResult(headers=headers, total=len(uids))

    @async_log_call
    async def get_email_body(self, mailbox: str, uid: int) -> EmailBody:
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)
            return await protocol.fetch_body(uid)

    @async_log_call
    async def search_emails(self, mailbox: str, criteria: str) -> List[int]:
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)
            return await protocol.search(criteria)

    @async_log_call
    async def mark_as_read(self, mailbox: str, uid: int) -> None:
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)
            await protocol.mark_as_read(uid)

    @async_log_call
    async def mark_as_unread(self, mailbox: str, uid: int) -> None:
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)
            await protocol.mark_as_unread(uid)

    @async_log_call
    async def delete_email(self, mailbox: str, uid: int) -> None:
        async with self.session() as protocol:
            await protocol.select_mailbox(mailbox)
            await protocol.delete_message(uid)

    ## Status

    async def verify(self) -> bool:
        """Return True when the server accepts our login and lists mailboxes."""
        try:
            async with self.session() as protocol:
                await protocol.list_mailboxes()
            return True

        except WiremailError as e:
            logger.warning(f"IMAP verification failed: {e.message}")
            return False

    def get_config(self) -> Dict[str, Any]:
        """Configuration without the password."""
        return self.config.redacted()
