"""IMAP protocol operations - mailbox commands over one connection."""

import re
from typing import List, Optional

from wiremail.core.models import EmailBody, EmailHeader, FetchResult, MailboxInfo
from wiremail.utils.errors import IMAPError
from wiremail.utils.logging import get_logger

from .body import BodyParser
from .connection import IMAPConnection, quote_string
from .constants import (
    BODY_FETCH_ITEMS,
    HEADER_FETCH_ITEMS,
    UID_FETCH_BATCH_SIZE,
    IMAPFlags,
)
from .envelope import SExpressionError, SExpressionReader, parse_header

logger = get_logger(__name__)

_LIST_PREFIX = re.compile(rb"^\* LIST ", re.IGNORECASE)
_SEARCH_PREFIX = re.compile(r"^\* SEARCH\b(.*)$", re.IGNORECASE | re.DOTALL)
_EXISTS = re.compile(r"^\* (\d+) EXISTS", re.IGNORECASE)
_RECENT = re.compile(r"^\* (\d+) RECENT", re.IGNORECASE)
_FLAGS = re.compile(r"^\* FLAGS \(([^)]*)\)", re.IGNORECASE)
_UIDNEXT = re.compile(r"\[UIDNEXT (\d+)\]", re.IGNORECASE)
_UIDVALIDITY = re.compile(r"\[UIDVALIDITY (\d+)\]", re.IGNORECASE)
_UNSEEN = re.compile(r"\[UNSEEN (\d+)\]", re.IGNORECASE)

# MailboxInfo field and the untagged SELECT response that carries it
_SELECT_COUNTERS = (
    ("exists", _EXISTS),
    ("recent", _RECENT),
    ("uid_next", _UIDNEXT),
    ("uid_validity", _UIDVALIDITY),
    ("unseen", _UNSEEN),
)


class IMAPProtocol:
    """Low-level IMAP protocol operations on an authenticated connection."""

    def __init__(self, connection: IMAPConnection):
        """Initialise IMAP protocol handler.

        Args:
            connection: Authenticated IMAPConnection
        """
        self.connection = connection

    ## Mailboxes

    async def list_mailboxes(self) -> List[str]:
        """List every mailbox name on the server.

        Raises:
            IMAPError: If LIST fails
        """
        response = await self.connection.execute('LIST "" "*"')
        self.connection.check(response, "LIST")

        mailboxes = []
        for raw in response.untagged:
            name = _parse_list_line(raw)
            if name is not None:
                mailboxes.append(name)

        logger.debug("Listed mailboxes", extra={"count": len(mailboxes)})
        return mailboxes

    async def select_mailbox(self, name: str) -> MailboxInfo:
        """SELECT ``name`` and record it as the connection's current mailbox.

        Raises:
            IMAPError: If SELECT fails
        """
        response = await self.connection.execute(f"SELECT {quote_string(name)}")
        if not response.ok:
            self.connection.set_selected(None)
        self.connection.check(response, "SELECT")

        info = MailboxInfo(name=name)
        for line in response.untagged_lines():
            flags = _FLAGS.match(line)
            if flags:
                info.flags = flags.group(1).split()
                continue

            for field, pattern in _SELECT_COUNTERS:
                match = pattern.search(line)
                if match:
                    setattr(info, field, int(match.group(1)))
                    break

        self.connection.set_selected(info)
        logger.debug(
            f"Selected IMAP mailbox: {name}",
            extra={"exists": info.exists, "uid_validity": info.uid_validity},
        )
        return info

    ## Fetching

    async def fetch_headers(self, start: int, count: int) -> FetchResult:
        """Fetch a page of headers by sequence number, newest first.

        ``start`` counts back from the newest message, so ``start=0`` returns
        the most recent ``count`` messages.

        Raises:
            IMAPError: If no mailbox is selected or FETCH fails
        """
        mailbox = self.connection.require_selected()
        total = mailbox.exists
        if total == 0:
            return FetchResult(headers=[], total=0)

        end = max(1, total - start)
        begin = max(1, end - count + 1)

        response = await self.connection.execute(
            f"FETCH {begin}:{end} {HEADER_FETCH_ITEMS}"
        )
        self.connection.check(response, "FETCH")

        headers = _parse_headers(response.untagged)
        headers.reverse()

        return FetchResult(headers=headers, total=total)

    async def fetch_headers_by_uids(self, uids: List[int]) -> List[EmailHeader]:
        """Fetch headers for specific UIDs, in batches of UID_FETCH_BATCH_SIZE.

        Raises:
            IMAPError: If no mailbox is selected or a UID FETCH fails
        """
        self.connection.require_selected()
        if not uids:
            return []

        headers: List[EmailHeader] = []
        for i in range(0, len(uids), UID_FETCH_BATCH_SIZE):
            uid_set = ",".join(str(uid) for uid in uids[i : i + UID_FETCH_BATCH_SIZE])

            response = await self.connection.execute(
                f"UID FETCH {uid_set} {HEADER_FETCH_ITEMS}"
            )
            self.connection.check(response, "UID FETCH")
            headers.extend(_parse_headers(response.untagged))

        logger.debug(
            "Fetched headers by UID",
            extra={"requested": len(uids), "received": len(headers)},
        )
        return headers

    async def fetch_body(self, uid: int) -> EmailBody:
        """Fetch and decode the body of one message.

        Raises:
            IMAPError: If no mailbox is selected or the fetch fails
        """
        self.connection.require_selected()

        response = await self.connection.execute(f"UID FETCH {uid} {BODY_FETCH_ITEMS}")
        self.connection.check(response, "FETCH body")

        return BodyParser.parse_response(uid, response.untagged)

    ## Searching

    async def search(self, criteria: str) -> List[int]:
        """Run ``UID SEARCH criteria`` and return UIDs in server order.

        Raises:
            IMAPError: If no mailbox is selected or SEARCH fails
        """
        self.connection.require_selected()

        response = await self.connection.execute(f"UID SEARCH {criteria}")
        self.connection.check(response, "SEARCH")

        uids = _parse_search(response.untagged_lines())
        logger.debug("UID search completed", extra={"criteria": criteria, "count": len(uids)})
        return uids

    async def search_by_recipients(self, recipients: List[str]) -> List[int]:
        """UIDs of messages addressed to any of ``recipients``, newest first."""
        if not recipients:
            return []

        uids = await self.search(build_recipient_criteria(recipients))
        uids.sort(reverse=True)
        return uids

    ## Flags

    async def mark_as_read(self, uid: int) -> None:
        await self._store(uid, "+FLAGS", IMAPFlags.SEEN)

    async def mark_as_unread(self, uid: int) -> None:
        await self._store(uid, "-FLAGS", IMAPFlags.SEEN)

    async def delete_message(self, uid: int) -> None:
        """Flag ``uid`` as deleted, then EXPUNGE.

        A failed STORE raises before EXPUNGE is sent.
        """
        await self._store(uid, "+FLAGS", IMAPFlags.DELETED)
        await self.expunge()

    async def expunge(self) -> None:
        self.connection.require_selected()

        response = await self.connection.execute("EXPUNGE")
        self.connection.check(response, "EXPUNGE")

    async def _store(self, uid: int, action: str, flag: str) -> None:
        self.connection.require_selected()

        response = await self.connection.execute(f"UID STORE {uid} {action} ({flag})")
        self.connection.check(response, "STORE")
        logger.debug(f"Updated flags on UID {uid}: {action} {flag}")


## Response parsing


def build_recipient_criteria(recipients: List[str]) -> str:
    """Build ``TO`` search criteria matching any of ``recipients``.

    More than one address nests into ``OR (<previous>) (TO "next")``.
    """
    if not recipients:
        raise IMAPError("At least one recipient is required for a recipient search")

    criteria = f"TO {quote_string(recipients[0])}"
    for recipient in recipients[1:]:
        criteria = f"OR ({criteria}) (TO {quote_string(recipient)})"
    return criteria


def _parse_headers(untagged: List[bytes]) -> List[EmailHeader]:
    headers = []
    for raw in untagged:
        header = parse_header(raw)
        if header is not None:
            headers.append(header)
    return headers


def _parse_search(lines: List[str]) -> List[int]:
    uids = []
    for line in lines:
        match = _SEARCH_PREFIX.match(line)
        if match:
            uids.extend(int(num) for num in match.group(1).split() if num.isdigit())
    return uids


def _parse_list_line(raw: bytes) -> Optional[str]:
    """Mailbox name from ``* LIST (flags) "delim" name``; quoted, atom or literal."""
    match = _LIST_PREFIX.match(raw)
    if not match:
        return None

    try:
        reader = SExpressionReader(raw, match.end())
        reader.read_list()
        reader.read_value()
        name = reader.read_value()

    except SExpressionError as e:
        logger.debug(f"Skipping malformed LIST response: {e}")
        return None

    if isinstance(name, bytes):
        return name.decode("utf-8", errors="replace")
    return name
