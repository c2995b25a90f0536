"""SMTP client facade: one connection per send."""

from typing import Any, Callable, Dict, List, Mapping, Optional

from wiremail.core.models import EmailMessage, SendResult
from wiremail.utils.config import SMTPConfig
from wiremail.utils.errors import WiremailError
from wiremail.utils.logging import async_log_call, get_logger

from .connection import SMTPConnection

logger = get_logger(__name__)


class SMTPClient:
    """Sends mail over SMTP.

    Sending never raises: every outcome, including connection and login
    failures, comes back as a SendResult.
    """

    def __init__(
        self,
        config: SMTPConfig,
        connection_factory: Callable[[SMTPConfig], SMTPConnection] = SMTPConnection,
    ):
        """Initialise SMTP client.

        Args:
            config: SMTP account configuration
            connection_factory: Builds the connection for each call
        """
        self.config = config
        self._connection_factory = connection_factory

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SMTPClient":
        """Build a client from ``SMTP_*`` variables."""
        return cls(SMTPConfig.from_env(environ))

    @async_log_call
    async def send(self, message: EmailMessage) -> SendResult:
        """Send one message on a fresh connection.

        Returns:
            SendResult; when the connection or login fails the message id is
            empty because nothing was attempted
        """
        try:
            async with self._connection_factory(self.config) as connection:
                return await connection.send_mail(message)

        except WiremailError as e:
            logger.error(f"SMTP send failed: {e.message}", extra={"server": self.config.host})
            return SendResult(success=False, message_id="", error=e.message)

    @async_log_call
    async def send_batch(self, messages: List[EmailMessage]) -> List[SendResult]:
        """Send several messages over one connection.

        Each message gets its own result. If the connection is lost, every
        message not yet attempted is reported as failed with that error.
        """
        results: List[SendResult] = []

        try:
            async with self._connection_factory(self.config) as connection:
                for message in messages:
                    result = await connection.send_mail(message)
                    results.append(result)

                    if not connection.connected:
                        break

        except WiremailError as e:
            logger.error(f"SMTP batch failed: {e.message}", extra={"server": self.config.host})
            error = e.message
        else:
            error = results[-1].error if results else None

        while len(results) < len(messages):
            results.append(
                SendResult(
                    success=False,
                    message_id="",
                    error=error or "Connection closed before the message was sent",
                )
            )

        logger.info(
            "SMTP batch complete",
            extra={
                "sent": sum(1 for result in results if result.success),
                "total": len(messages),
            },
        )
        return results

    async def verify(self) -> bool:
        """Return True when the server accepts our login."""
        try:
            async with self._connection_factory(self.config):
                pass
            return True

        except WiremailError as e:
            logger.warning(f"SMTP verification failed: {e.message}")
            return False

    def get_config(self) -> Dict[str, Any]:
        """Configuration without the password."""
        return self.config.redacted()
