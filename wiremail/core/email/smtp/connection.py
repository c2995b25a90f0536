"""SMTP connection management - handles the dialogue with the server.

One SMTPConnection serves one logical operation: connect, EHLO (upgrading
with STARTTLS when offered), AUTH LOGIN, any number of messages, QUIT.
"""

import asyncio
import base64
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Type

from wiremail.core.email.constants import CRLF, CRLF_BYTES, Timeouts
from wiremail.core.email.transport import Transport
from wiremail.core.models import EmailMessage, Sender, SendResult
from wiremail.utils.config import SMTPConfig
from wiremail.utils.errors import (
    AuthenticationError,
    InvalidCredentialsError,
    MissingCredentialsError,
    MissingRequiredFieldError,
    NetworkError,
    NetworkTimeoutError,
    SMTPError,
    ValidationError,
    WiremailError,
)
from wiremail.utils.logging import async_log_call, get_logger, log_event

from .builder import MessageBuilder, collect_recipients, domain_of, make_message_id
from .constants import (
    DATA_TERMINATOR,
    DEFAULT_EHLO_DOMAIN,
    RECIPIENT_ACCEPTED,
    SMTPResponse,
)

logger = get_logger(__name__)

_REPLY_LINE = re.compile(r"^(\d{3})([ -]?)(.*)$")


@dataclass
class SMTPReply:
    """A complete, possibly multi-line, server reply."""

    code: int
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """The reply exactly as the server sent it, one line per line."""
        return "\n".join(self.lines)


def dot_stuff(content: str) -> str:
    """Double leading dots so no line of ``content`` reads as end-of-data."""
    return CRLF.join(
        "." + line if line.startswith(".") else line for line in content.split(CRLF)
    )


class SMTPConnection:
    """Manages an SMTP connection lifecycle."""

    def __init__(self, config: SMTPConfig, transport: Optional[Transport] = None):
        """Initialise SMTP connection with account configuration.

        Args:
            config: SMTP account configuration
            transport: Transport to use instead of a new TCP connection
        """
        self.config = config
        self._transport = transport or Transport(
            config.host,
            config.port,
            use_tls=config.secure,
            verify_tls=config.verify_tls,
        )
        self._buffer = bytearray()
        self._command_count = 0
        self.connected = False
        self.authenticated = False
        self.extensions: Set[str] = set()

    @property
    def is_secure(self) -> bool:
        return self._transport.is_tls

    @property
    def command_count(self) -> int:
        """Commands sent on this connection so far."""
        return self._command_count

    @property
    def ehlo_domain(self) -> str:
        return domain_of(self.config.from_email) or DEFAULT_EHLO_DOMAIN

    def resolve_sender(self, message: EmailMessage) -> Sender:
        """Sender for ``message``: its own ``from_`` first, then the account default."""
        override = message.from_
        return Sender(
            name=(override.name if override else "") or self.config.from_name,
            email=(override.email if override else "")
            or self.config.from_email
            or self.config.username,
        )

    ## Lifecycle

    @async_log_call
    async def connect(self) -> None:
        """Open the socket and read the 220 greeting.

        Raises:
            NetworkError: If the connection cannot be established
            SMTPError: If the greeting is not 220
        """
        logger.info(
            "Connecting to SMTP server",
            extra={"server": self.config.host, "port": self.config.port},
        )

        await self._transport.open(Timeouts.SMTP_CONNECT)
        self.connected = True

        try:
            greeting = await self._read_reply(Timeouts.SMTP_CONNECT)
            self.expect(greeting, (SMTPResponse.READY,), "Unexpected greeting")

        except WiremailError:
            await self._close()
            raise

    @async_log_call
    async def authenticate(self) -> None:
        """EHLO, STARTTLS when offered on a plaintext socket, then AUTH LOGIN.

        Raises:
            MissingCredentialsError: If username or password is empty
            AuthenticationError: If the server refuses AUTH LOGIN
            InvalidCredentialsError: If the username or password is rejected
            SMTPError: If EHLO or STARTTLS fails
        """
        if not self.config.username or not self.config.password:
            raise MissingCredentialsError(
                "SMTP username and password are required",
                details={"server": self.config.host},
            )

        await self._ehlo()

        if not self._transport.is_tls and "STARTTLS" in self.extensions:
            reply = await self.command("STARTTLS")
            self.expect(reply, (SMTPResponse.READY,), "STARTTLS failed")

            if self._buffer:
                raise SMTPError(
                    "Server sent data before the TLS handshake",
                    details={"server": self.config.host},
                )

            await self._transport.start_tls(Timeouts.SMTP_STARTTLS)
            logger.debug("SMTP connection upgraded to TLS")
            await self._ehlo("EHLO after STARTTLS failed")

        reply = await self.command("AUTH LOGIN")
        self.expect(
            reply, (SMTPResponse.AUTH_CHALLENGE,), "AUTH LOGIN failed", AuthenticationError
        )

        reply = await self.command(_b64(self.config.username), sensitive=True)
        self.expect(
            reply,
            (SMTPResponse.AUTH_CHALLENGE,),
            "Username rejected",
            InvalidCredentialsError,
        )

        reply = await self.command(_b64(self.config.password), sensitive=True)
        self.expect(
            reply,
            (SMTPResponse.AUTH_SUCCESS,),
            "Authentication failed",
            InvalidCredentialsError,
        )

        self.authenticated = True
        logger.info("SMTP connection established", extra={"server": self.config.host})

    @async_log_call
    async def disconnect(self) -> None:
        """Send QUIT if possible and always close the socket."""
        if self.connected and self._transport.is_open:
            try:
                await self.command("QUIT", timeout=Timeouts.SMTP_QUIT)

            except WiremailError as e:
                logger.debug(f"Error during SMTP quit: {str(e)}")

        await self._close()

    async def _close(self) -> None:
        await self._transport.close()
        self.connected = False
        self.authenticated = False

    async def _ehlo(self, failure: str = "EHLO failed") -> None:
        reply = await self.command(f"EHLO {self.ehlo_domain}")
        self.expect(reply, (SMTPResponse.OK,), failure)
        self.extensions = _parse_extensions(reply)

    ## Sending

    async def send_mail(self, message: EmailMessage) -> SendResult:
        """Run one MAIL FROM / RCPT TO / DATA transaction.

        Never raises for a failed send; the failure is reported in the result.
        The message id is generated first and returned either way.
        """
        sender = self.resolve_sender(message)
        message_id = make_message_id(sender.email)

        try:
            recipients = collect_recipients(message)
            if not recipients:
                raise MissingRequiredFieldError(
                    "At least one recipient is required", details={"field": "to"}
                )

            content = MessageBuilder(sender).build(message, message_id)

            reply = await self.command(f"MAIL FROM:<{sender.email}>")
            self.expect(reply, (SMTPResponse.OK,), "MAIL FROM failed")

            for recipient in recipients:
                reply = await self.command(f"RCPT TO:<{recipient}>")
                self.expect(
                    reply, RECIPIENT_ACCEPTED, f"RCPT TO failed for {recipient}"
                )

            reply = await self.command("DATA")
            self.expect(reply, (SMTPResponse.START_MAIL,), "DATA command failed")

            reply = await self._send_data(content)
            self.expect(reply, (SMTPResponse.OK,), "Message rejected")

        except NetworkError as e:
            logger.error(f"SMTP connection failed while sending: {e.message}")
            await self._close()
            return SendResult(success=False, message_id=message_id, error=e.message)

        except WiremailError as e:
            logger.warning(f"Send failed: {e.message}", extra={"message_id": message_id})
            await self._reset()
            return SendResult(success=False, message_id=message_id, error=e.message)

        log_event(
            "email_sent",
            "Email sent",
            message_id=message_id,
            recipients=len(recipients),
        )
        return SendResult(success=True, message_id=message_id, response=reply.text)

    async def _send_data(self, content: str) -> SMTPReply:
        self._command_count += 1
        logger.debug(f"SMTP > <message data, {len(content)} characters>")

        payload = dot_stuff(content) + DATA_TERMINATOR
        await self._transport.write(payload.encode("utf-8"))
        return await self._read_reply(self.config.timeout)

    async def _reset(self) -> None:
        """Abort the current transaction so the next message starts clean."""
        if not self.connected:
            return

        try:
            await self.command("RSET")

        except WiremailError as e:
            logger.debug(f"RSET failed: {str(e)}")

    ## Commands

    async def command(
        self, line: str, timeout: Optional[float] = None, sensitive: bool = False
    ) -> SMTPReply:
        """Send one command line and wait for its complete reply.

        Raises:
            SMTPError: If the connection is not open
            ValidationError: If the line contains CR or LF
            NetworkTimeoutError: If the reply does not arrive in time
            NetworkError: If the socket fails
        """
        if not self.connected:
            raise SMTPError("Not connected to SMTP server")

        if "\r" in line or "\n" in line:
            raise ValidationError("SMTP commands cannot contain line breaks")

        self._command_count += 1
        logger.debug(f"SMTP > {'[REDACTED]' if sensitive else line}")

        await self._transport.write(f"{line}{CRLF}".encode("utf-8"))
        reply = await self._read_reply(timeout or self.config.timeout)

        logger.debug(f"SMTP < {reply.code}")
        return reply

    def expect(
        self,
        reply: SMTPReply,
        codes: Iterable[int],
        failure: str,
        error_class: Type[WiremailError] = SMTPError,
    ) -> None:
        """Raise ``error_class`` with the full server reply unless the code is expected."""
        if reply.code in codes:
            return

        raise error_class(
            f"{failure}: {reply.text}",
            details={
                "code": reply.code,
                "response": reply.text,
                "server": self.config.host,
            },
        )

    async def _read_reply(self, timeout: float) -> SMTPReply:
        """Read lines until the final ``NNN text`` line of a reply."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        lines: List[str] = []

        while True:
            line_end = self._buffer.find(CRLF_BYTES)

            if line_end == -1:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise NetworkTimeoutError(
                        "SMTP response timeout",
                        details={"server": self.config.host, "timeout": timeout},
                    )
                self._buffer.extend(await self._transport.read(remaining))
                continue

            line = bytes(self._buffer[:line_end]).decode("utf-8", errors="replace")
            del self._buffer[: line_end + 2]
            lines.append(line)

            match = _REPLY_LINE.match(line)
            if not match:
                return SMTPReply(code=0, lines=lines)
            if match.group(2) != "-":
                return SMTPReply(code=int(match.group(1)), lines=lines)

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


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _parse_extensions(reply: SMTPReply) -> Set[str]:
    """EHLO keywords, skipping the greeting line."""
    extensions = set()
    for line in reply.lines[1:]:
        keyword = line[4:].split(maxsplit=1)
        if keyword:
            extensions.add(keyword[0].upper())
    return extensions
