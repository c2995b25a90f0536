"""IMAP connection management - handles connection setup, commands and cleanup.

One IMAPConnection serves one logical operation: connect, authenticate, run
commands strictly one at a time, disconnect. It is never reused afterwards.
"""

import asyncio
from enum import Enum
from typing import Optional, Set

from wiremail.core.email.constants import Timeouts
from wiremail.core.email.transport import Transport
from wiremail.core.models import MailboxInfo
from wiremail.utils.config import IMAPConfig
from wiremail.utils.errors import (
    IMAPError,
    InvalidCredentialsError,
    MissingCredentialsError,
    NetworkTimeoutError,
    ValidationError,
    WiremailError,
)
from wiremail.utils.logging import async_log_call, get_logger

from .constants import TAG_FORMAT
from .framer import ResponseFramer, TaggedResponse

logger = get_logger(__name__)


class ConnectionState(Enum):
    """Lifecycle of an IMAP connection."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"


def quote_string(value: str) -> str:
    """Quote ``value`` as an IMAP string, escaping backslashes and quotes.

    Raises:
        ValidationError: If ``value`` contains CR or LF, which a quoted
            string cannot carry and which would end the command early
    """
    if "\r" in value or "\n" in value:
        raise ValidationError("IMAP strings cannot contain line breaks")

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _redact(command: str) -> str:
    if command.upper().startswith("LOGIN "):
        return "LOGIN [REDACTED]"
    return command


class IMAPConnection:
    """Manages an IMAP connection lifecycle."""

    def __init__(self, config: IMAPConfig, transport: Optional[Transport] = None):
        """Initialise IMAP connection with account configuration.

        Args:
            config: IMAP account configuration
            transport: Transport to use instead of a new TCP connection
        """
        self.config = config
        self._transport = transport or Transport(
            config.host,
            config.port,
            use_tls=config.secure,
            verify_tls=config.verify_tls,
        )
        self._framer = ResponseFramer()
        self._tag_counter = 0
        self.state = ConnectionState.DISCONNECTED
        self.capabilities: Set[str] = set()
        self.selected: Optional[MailboxInfo] = None

    @property
    def is_secure(self) -> bool:
        return self._transport.is_tls

    def _next_tag(self) -> str:
        self._tag_counter += 1
        return TAG_FORMAT.format(self._tag_counter)

    ## Lifecycle

    @async_log_call
    async def connect(self) -> None:
        """Open the socket and consume the server greeting.

        Raises:
            NetworkError: If the connection cannot be established
            IMAPError: If the greeting is not ``* OK``
        """
        logger.info(
            "Connecting to IMAP server",
            extra={"server": self.config.host, "port": self.config.port},
        )

        await self._transport.open(Timeouts.IMAP_CONNECT)

        try:
            greeting = await self._read_line(Timeouts.IMAP_CONNECT)

        except WiremailError:
            await self._transport.close()
            raise

        if not greeting.startswith(b"* OK"):
            await self._transport.close()
            text = greeting.decode("utf-8", errors="replace")
            raise IMAPError(
                f"Unexpected greeting: {text}",
                details={"server": self.config.host, "response": text},
            )

        self.state = ConnectionState.CONNECTED
        logger.debug("IMAP greeting received", extra={"server": self.config.host})

    @async_log_call
    async def authenticate(self) -> None:
        """Upgrade to TLS when offered, then LOGIN.

        Raises:
            MissingCredentialsError: If username or password is empty
            InvalidCredentialsError: If the server rejects LOGIN
            IMAPError: If CAPABILITY or STARTTLS fails
        """
        if not self.config.username or not self.config.password:
            raise MissingCredentialsError(
                "IMAP username and password are required",
                details={"server": self.config.host},
            )

        if not self._transport.is_tls:
            response = await self.execute("CAPABILITY")
            self.check(response, "CAPABILITY")
            self.capabilities = _parse_capabilities(response)

            if "STARTTLS" in self.capabilities:
                response = await self.execute("STARTTLS")
                self.check(response, "STARTTLS")

                if self._framer.pending:
                    raise IMAPError(
                        "Server sent data before the TLS handshake",
                        details={"server": self.config.host},
                    )

                await self._transport.start_tls(Timeouts.IMAP_STARTTLS)
                logger.debug("IMAP connection upgraded to TLS")
            else:
                logger.warning(
                    "IMAP server does not offer STARTTLS, logging in over plaintext",
                    extra={"server": self.config.host},
                )

        response = await self.execute(
            f"LOGIN {quote_string(self.config.username)} "
            f"{quote_string(self.config.password)}"
        )
        if not response.ok:
            logger.warning(
                "IMAP authentication failed", extra={"server": self.config.host}
            )
            raise InvalidCredentialsError(
                f"Authentication failed: {response.text}",
                details={"server": self.config.host, "response": response.text},
            )

        self.state = ConnectionState.AUTHENTICATED
        logger.info("IMAP connection established", extra={"server": self.config.host})

    @async_log_call
    async def disconnect(self) -> None:
        """Send LOGOUT if possible and always close the socket."""
        if self.state is not ConnectionState.DISCONNECTED and self._transport.is_open:
            try:
                await self.execute("LOGOUT", timeout=Timeouts.IMAP_LOGOUT)

            except WiremailError as e:
                logger.debug(f"Error during IMAP logout: {str(e)}")

        await self._transport.close()
        self.state = ConnectionState.DISCONNECTED
        self.selected = None

    ## Commands

    async def execute(
        self, command: str, timeout: Optional[float] = None
    ) -> TaggedResponse:
        """Send one tagged command and wait for its complete response.

        Args:
            command: Command text without tag or line ending
            timeout: Seconds to wait for the tagged response, default from config

        Returns:
            The tagged response with its untagged lines

        Raises:
            IMAPError: If the connection is not open
            ValidationError: If the command contains a line break
            NetworkTimeoutError: If the response does not arrive in time
            NetworkError: If the socket fails
        """
        if self.state is ConnectionState.DISCONNECTED:
            raise IMAPError("Not connected", details={"command": _redact(command)})

        if "\r" in command or "\n" in command:
            raise ValidationError("IMAP commands cannot contain line breaks")

        tag = self._next_tag()
        logger.debug(f"IMAP > {tag} {_redact(command)}")

        await self._transport.write(f"{tag} {command}\r\n".encode("utf-8"))
        response = await self._wait_for(tag, timeout or self.config.timeout)

        logger.debug(
            f"IMAP < {tag} {response.status}",
            extra={"untagged": len(response.untagged)},
        )
        return response

    def check(self, response: TaggedResponse, operation: str) -> None:
        """Raise IMAPError carrying the server text unless the response is OK."""
        if response.ok:
            return

        raise IMAPError(
            f"{operation} failed: {response.text}",
            details={
                "operation": operation,
                "status": response.status,
                "response": response.text,
                "server": self.config.host,
            },
        )

    def require_selected(self) -> MailboxInfo:
        """Return the selected mailbox or raise if none is selected."""
        if self.state is not ConnectionState.SELECTED or self.selected is None:
            raise IMAPError("No mailbox selected")
        return self.selected

    def set_selected(self, mailbox: Optional[MailboxInfo]) -> None:
        """Record the result of a SELECT; None means the selection was lost."""
        self.selected = mailbox
        if mailbox is not None:
            self.state = ConnectionState.SELECTED
        elif self.state is ConnectionState.SELECTED:
            self.state = ConnectionState.AUTHENTICATED

    ## Reading

    async def _read_line(self, timeout: float) -> bytes:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            line = self._framer.next_line()
            if line is not None:
                return line

            self._framer.feed(await self._read_chunk(deadline, timeout))

    async def _wait_for(self, tag: str, timeout: float) -> TaggedResponse:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            response = self._framer.extract(tag)
            if response is not None:
                return response

            self._framer.feed(await self._read_chunk(deadline, timeout))

    async def _read_chunk(self, deadline: float, timeout: float) -> bytes:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise NetworkTimeoutError(
                "IMAP response timeout",
                details={"server": self.config.host, "timeout": timeout},
            )

        return await self._transport.read(remaining)

    ## Context Manager Helpers

    async def __aenter__(self):
        """Connect and authenticate."""
        await self.connect()
        try:
            await self.authenticate()

        except BaseException:
            await self.disconnect()
            raise

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Disconnect, whatever happened inside the block."""
        await self.disconnect()


def _parse_capabilities(response: TaggedResponse) -> Set[str]:
    capabilities: Set[str] = set()
    for line in response.untagged_lines():
        if line.upper().startswith("* CAPABILITY"):
            capabilities.update(token.upper() for token in line.split()[2:])
    return capabilities
