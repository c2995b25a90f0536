"""Byte transport for the mail protocols: a plain or TLS TCP stream.

The stream can be upgraded to TLS in place (STARTTLS). Every read is bounded
by a timeout, and closing never raises so callers can always tear down.
"""

import asyncio
import ssl
from typing import Optional

from wiremail.utils.errors import ConnectionClosedError, NetworkError, NetworkTimeoutError
from wiremail.utils.logging import get_logger

from .constants import READ_CHUNK_SIZE

logger = get_logger(__name__)


class Transport:
    """Owns one TCP connection for the lifetime of a single protocol session."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        use_tls: bool = False,
        verify_tls: bool = True,
    ):
        """Initialise the transport without connecting.

        Args:
            host: Server hostname
            port: Server port
            use_tls: Wrap the socket in TLS right after connecting
            verify_tls: Verify the server certificate and hostname
        """
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.verify_tls = verify_tls
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._tls = False

    @property
    def is_tls(self) -> bool:
        return self._tls

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def open(self, timeout: float) -> None:
        """Connect to the server, with TLS when ``use_tls`` is set.

        Raises:
            NetworkTimeoutError: If the connection or handshake times out
            NetworkError: If the connection or handshake fails
        """
        context = self._ssl_context() if self.use_tls else None

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.host,
                    self.port,
                    ssl=context,
                    server_hostname=self.host if context else None,
                ),
                timeout=timeout,
            )

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                f"Connection to {self.host}:{self.port} timed out",
                details={"server": self.host, "port": self.port, "timeout": timeout},
            ) from e

        except OSError as e:
            raise NetworkError(
                f"Failed to connect to {self.host}:{self.port}: {str(e)}",
                details={"server": self.host, "port": self.port, "tls": self.use_tls},
            ) from e

        self._tls = context is not None
        logger.debug(
            "Transport connected",
            extra={"server": self.host, "port": self.port, "tls": self._tls},
        )

    async def start_tls(self, timeout: float) -> None:
        """Upgrade the open plaintext stream to TLS in place.

        Must only be called once the server's go-ahead reply has been fully
        read, so no plaintext bytes are left behind in the stream.

        Raises:
            NetworkTimeoutError: If the handshake times out
            NetworkError: If the handshake fails or the stream is not open
        """
        if self._writer is None:
            raise NetworkError("Cannot start TLS on a closed transport")

        if self._tls:
            return

        try:
            await asyncio.wait_for(
                self._writer.start_tls(
                    self._ssl_context(), server_hostname=self.host
                ),
                timeout=timeout,
            )

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                "TLS handshake timed out",
                details={"server": self.host, "timeout": timeout},
            ) from e

        except OSError as e:
            raise NetworkError(
                f"TLS handshake failed: {str(e)}",
                details={"server": self.host},
            ) from e

        self._tls = True
        logger.debug("Transport upgraded to TLS", extra={"server": self.host})

    async def write(self, data: bytes) -> None:
        """Send ``data`` and wait until it is flushed to the socket."""
        if self._writer is None:
            raise NetworkError("Not connected", details={"server": self.host})

        try:
            self._writer.write(data)
            await self._writer.drain()

        except OSError as e:
            raise NetworkError(
                f"Failed to write to {self.host}: {str(e)}",
                details={"server": self.host},
            ) from e

    async def read(self, timeout: float) -> bytes:
        """Return the next chunk of bytes from the server.

        Raises:
            NetworkTimeoutError: If nothing arrives within ``timeout`` seconds
            ConnectionClosedError: If the server closed the connection
        """
        if self._reader is None:
            raise NetworkError("Not connected", details={"server": self.host})

        try:
            data = await asyncio.wait_for(
                self._reader.read(READ_CHUNK_SIZE), timeout=max(timeout, 0)
            )

        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                "Timed out waiting for server response",
                details={"server": self.host, "timeout": timeout},
            ) from e

        except OSError as e:
            raise NetworkError(
                f"Failed to read from {self.host}: {str(e)}",
                details={"server": self.host},
            ) from e

        if not data:
            raise ConnectionClosedError(details={"server": self.host})

        return data

    async def close(self, timeout: float = 5.0) -> None:
        """Destroy the connection. Never raises."""
        writer, self._writer, self._reader = self._writer, None, None

        if writer is None:
            return

        try:
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=timeout)

        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Error while closing transport: {str(e)}")

        finally:
            self._tls = False
