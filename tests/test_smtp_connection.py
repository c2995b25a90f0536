"""
Tests for the SMTP connection

Tests cover:
- Greeting and multi-line replies
- STARTTLS negotiation and AUTH LOGIN
- MAIL FROM / RCPT TO / DATA transactions
- Dot-stuffing and the data terminator
- Failure handling with RSET and connection loss
"""
import base64

import pytest

from wiremail.core.email.smtp.connection import SMTPConnection, dot_stuff
from wiremail.core.models import EmailMessage, Sender
from wiremail.utils.errors import (
    AuthenticationError,
    InvalidCredentialsError,
    MissingCredentialsError,
    NetworkTimeoutError,
    SMTPError,
    ValidationError,
)

from .test_helpers import CLOSE, FakeTransport, SMTPTestHelper

# EHLO, STARTTLS, EHLO, AUTH LOGIN, username, password
LOGIN_WRITES = 6


def _b64(value):
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


async def _authenticated(config, replies, **kwargs):
    transport = FakeTransport(
        SMTPTestHelper.GREETING, SMTPTestHelper.login_replies() + replies, **kwargs
    )
    connection = SMTPConnection(config, transport=transport)
    await connection.connect()
    await connection.authenticate()
    return connection, transport


class TestConnect:
    """Tests for the greeting"""

    @pytest.mark.asyncio
    async def test_ready_greeting(self, smtp_config):
        connection = SMTPConnection(
            smtp_config, transport=FakeTransport(SMTPTestHelper.GREETING)
        )

        await connection.connect()

        assert connection.connected
        assert connection.command_count == 0

    @pytest.mark.asyncio
    async def test_multiline_greeting(self, smtp_config):
        greeting = b"220-smtp.test.com ESMTP\r\n220-no UCE\r\n220 ready\r\n"
        connection = SMTPConnection(smtp_config, transport=FakeTransport(greeting))

        await connection.connect()

        assert connection.connected

    @pytest.mark.asyncio
    async def test_refused_greeting(self, smtp_config):
        transport = FakeTransport(b"554 5.3.2 No service\r\n")
        connection = SMTPConnection(smtp_config, transport=transport)

        with pytest.raises(SMTPError, match="No service"):
            await connection.connect()

        assert not connection.connected
        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_greeting_timeout(self, smtp_config):
        transport = FakeTransport(b"")
        connection = SMTPConnection(smtp_config, transport=transport)

        with pytest.raises(NetworkTimeoutError):
            await connection.connect()

        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_command_before_connect(self, smtp_config):
        connection = SMTPConnection(smtp_config, transport=FakeTransport())

        with pytest.raises(SMTPError, match="Not connected"):
            await connection.command("NOOP")


class TestAuthenticate:
    """Tests for EHLO, STARTTLS and AUTH LOGIN"""

    @pytest.mark.asyncio
    async def test_starttls_and_login(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [])

        assert transport.start_tls_calls == 1
        assert connection.is_secure
        assert connection.authenticated
        assert transport.sent_lines() == [
            "EHLO test.com",
            "STARTTLS",
            "EHLO test.com",
            "AUTH LOGIN",
            _b64("user@test.com"),
            _b64("secret"),
        ]
        assert connection.extensions == {"SIZE", "AUTH"}

    @pytest.mark.asyncio
    async def test_no_starttls_offered(self, smtp_config):
        transport = FakeTransport(
            SMTPTestHelper.GREETING, SMTPTestHelper.login_replies(starttls=False)
        )
        connection = SMTPConnection(smtp_config, transport=transport)

        await connection.connect()
        await connection.authenticate()

        assert transport.start_tls_calls == 0
        assert transport.sent_lines()[:2] == ["EHLO test.com", "AUTH LOGIN"]

    @pytest.mark.asyncio
    async def test_implicit_tls_does_not_upgrade(self, smtp_config):
        transport = FakeTransport(
            SMTPTestHelper.GREETING,
            [SMTPTestHelper.EHLO_STARTTLS] + SMTPTestHelper.login_replies(starttls=False)[1:],
            tls=True,
        )
        connection = SMTPConnection(smtp_config, transport=transport)

        await connection.connect()
        await connection.authenticate()

        assert transport.start_tls_calls == 0
        assert "STARTTLS" not in transport.sent_lines()

    @pytest.mark.asyncio
    async def test_ehlo_domain_falls_back_to_localhost(self, smtp_config):
        config = smtp_config.model_copy(update={"from_email": ""})
        connection, transport = await _authenticated(config, [])

        assert transport.sent_lines()[0] == "EHLO localhost"

    @pytest.mark.asyncio
    async def test_data_after_starttls_reply_rejected(self, smtp_config):
        replies = SMTPTestHelper.login_replies()
        replies[1] = b"220 Ready\r\n250 injected\r\n"
        transport = FakeTransport(SMTPTestHelper.GREETING, replies)
        connection = SMTPConnection(smtp_config, transport=transport)

        await connection.connect()
        with pytest.raises(SMTPError, match="before the TLS handshake"):
            await connection.authenticate()

        assert transport.start_tls_calls == 0

    @pytest.mark.asyncio
    async def test_password_rejected(self, smtp_config):
        replies = SMTPTestHelper.login_replies()
        replies[-1] = b"535 5.7.8 Username and Password not accepted\r\n"
        transport = FakeTransport(SMTPTestHelper.GREETING, replies)
        connection = SMTPConnection(smtp_config, transport=transport)

        await connection.connect()
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await connection.authenticate()

        assert "535 5.7.8 Username and Password not accepted" in exc_info.value.message
        assert not connection.authenticated

    @pytest.mark.asyncio
    async def test_auth_login_not_supported(self, smtp_config):
        replies = SMTPTestHelper.login_replies()[:3] + [b"504 5.5.4 Unrecognized auth type\r\n"]
        transport = FakeTransport(SMTPTestHelper.GREETING, replies)
        connection = SMTPConnection(smtp_config, transport=transport)

        await connection.connect()
        with pytest.raises(AuthenticationError) as exc_info:
            await connection.authenticate()

        assert not isinstance(exc_info.value, InvalidCredentialsError)

    @pytest.mark.asyncio
    async def test_missing_credentials(self, smtp_config):
        config = smtp_config.model_copy(update={"username": ""})
        transport = FakeTransport(SMTPTestHelper.GREETING)
        connection = SMTPConnection(config, transport=transport)

        await connection.connect()
        with pytest.raises(MissingCredentialsError):
            await connection.authenticate()

        assert transport.writes == []

    @pytest.mark.asyncio
    async def test_context_manager_quits(self, smtp_config):
        transport = FakeTransport(
            SMTPTestHelper.GREETING,
            SMTPTestHelper.login_replies() + [b"221 2.0.0 Bye\r\n"],
        )

        async with SMTPConnection(smtp_config, transport=transport) as connection:
            assert connection.authenticated

        assert transport.sent_lines()[-1] == "QUIT"
        assert transport.close_calls == 1
        assert not connection.connected


class TestSendMail:
    """Tests for mail transactions"""

    @pytest.mark.asyncio
    async def test_encoded_subject_and_terminator(self, smtp_config):
        connection, transport = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies()
        )
        message = EmailMessage(to=["a@x.com"], subject="Résumé", text="body")

        result = await connection.send_mail(message)

        assert result.success
        assert result.response == "250 2.0.0 Ok: queued as 12345"
        payload = transport.writes[-1].decode("utf-8")
        assert "\r\nSubject: =?UTF-8?B?" in payload
        assert payload.endswith("\r\n.\r\n")
        assert transport.sent_lines()[LOGIN_WRITES:LOGIN_WRITES + 3] == [
            "MAIL FROM:<sender@test.com>",
            "RCPT TO:<a@x.com>",
            "DATA",
        ]

    @pytest.mark.asyncio
    async def test_message_id_uses_sender_domain(self, smtp_config, test_message):
        connection, transport = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies()
        )

        result = await connection.send_mail(test_message)

        assert result.message_id.startswith("<")
        assert result.message_id.endswith("@test.com>")
        assert f"Message-ID: {result.message_id}" in transport.writes[-1].decode("utf-8")

    @pytest.mark.asyncio
    async def test_sender_override(self, smtp_config):
        connection, transport = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies()
        )
        message = EmailMessage(
            to="a@x.com", subject="Hi", text="x", from_=Sender(name="Other", email="other@x.org")
        )

        await connection.send_mail(message)

        assert transport.sent_lines()[LOGIN_WRITES] == "MAIL FROM:<other@x.org>"
        assert "From: Other <other@x.org>" in transport.writes[-1].decode("utf-8")

    @pytest.mark.asyncio
    async def test_sender_falls_back_to_username(self, smtp_config, test_message):
        config = smtp_config.model_copy(update={"from_email": ""})
        connection, transport = await _authenticated(
            config, SMTPTestHelper.transaction_replies()
        )

        await connection.send_mail(test_message)

        assert transport.sent_lines()[LOGIN_WRITES] == "MAIL FROM:<user@test.com>"

    @pytest.mark.asyncio
    async def test_all_recipients_in_order_bcc_hidden(self, smtp_config):
        connection, transport = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies(recipients=3)
        )
        message = EmailMessage(
            to=["Ann <ann@x.com>"], cc=["bob@x.com"], bcc=["eve@x.com"], subject="Hi", text="x"
        )

        result = await connection.send_mail(message)

        assert result.success
        lines = transport.sent_lines()
        assert lines[LOGIN_WRITES + 1:LOGIN_WRITES + 4] == [
            "RCPT TO:<ann@x.com>",
            "RCPT TO:<bob@x.com>",
            "RCPT TO:<eve@x.com>",
        ]
        payload = transport.writes[-1].decode("utf-8")
        assert "Cc: bob@x.com" in payload
        assert "eve@x.com" not in payload

    @pytest.mark.asyncio
    async def test_leading_dots_are_stuffed(self, smtp_config):
        connection, transport = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies()
        )
        message = EmailMessage(to="a@x.com", subject="Hi", text=".\n.hidden line")

        await connection.send_mail(message)

        payload = transport.writes[-1].decode("utf-8")
        assert "\r\n..\r\n..hidden line" in payload
        assert payload.count("\r\n.\r\n") == 1

    @pytest.mark.asyncio
    async def test_rejected_recipient_resets(self, smtp_config, test_message):
        connection, transport = await _authenticated(
            smtp_config,
            [
                b"250 2.1.0 Sender OK\r\n",
                b"550 5.1.1 No such user\r\n",
                b"250 2.0.0 Reset\r\n",
            ],
        )

        result = await connection.send_mail(test_message)

        assert not result.success
        assert result.message_id.endswith("@test.com>")
        assert "550 5.1.1 No such user" in result.error
        assert transport.sent_lines()[-1] == "RSET"
        assert "DATA" not in transport.sent_lines()
        assert connection.connected

    @pytest.mark.asyncio
    async def test_rejected_data_resets(self, smtp_config, test_message):
        replies = SMTPTestHelper.transaction_replies()
        replies[-1] = b"554 5.7.1 Message rejected as spam\r\n"
        connection, transport = await _authenticated(
            smtp_config, replies + [b"250 Reset\r\n"]
        )

        result = await connection.send_mail(test_message)

        assert not result.success
        assert "spam" in result.error
        assert transport.sent_lines()[-1] == "RSET"

    @pytest.mark.asyncio
    async def test_no_recipients(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [b"250 Reset\r\n"])

        result = await connection.send_mail(EmailMessage(to=[], subject="Hi", text="x"))

        assert not result.success
        assert "recipient" in result.error
        assert not any(line.startswith("MAIL FROM") for line in transport.sent_lines())

    @pytest.mark.asyncio
    async def test_header_injection_not_sent(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [b"250 Reset\r\n"])
        message = EmailMessage(to="a@x.com", subject="Hi\r\nBcc: victim@x.com", text="x")

        result = await connection.send_mail(message)

        assert not result.success
        assert not any(line.startswith("MAIL FROM") for line in transport.sent_lines())

    @pytest.mark.asyncio
    async def test_bcc_line_break_not_sent(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [b"250 Reset\r\n"])
        message = EmailMessage(
            to="a@x.com", bcc=["b@x.com\r\nRCPT TO:<evil@y.com"], subject="Hi", text="x"
        )

        result = await connection.send_mail(message)

        assert not result.success
        assert "line breaks" in result.error
        sent = transport.sent_lines()
        assert not any("evil" in line for line in sent)
        assert not any(line.startswith(("MAIL FROM", "RCPT TO")) for line in sent)
        assert sent[-1] == "RSET"

    @pytest.mark.asyncio
    async def test_sender_line_break_not_sent(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [b"250 Reset\r\n"])
        message = EmailMessage(
            to="a@x.com",
            subject="Hi",
            text="x",
            from_=Sender(name="", email="s@x.com>\r\nRCPT TO:<evil@y.com"),
        )

        result = await connection.send_mail(message)

        assert not result.success
        assert not any("evil" in line for line in transport.sent_lines())

    @pytest.mark.asyncio
    async def test_command_with_line_break_rejected(self, smtp_config):
        connection, transport = await _authenticated(smtp_config, [])
        count = connection.command_count
        writes = len(transport.writes)

        with pytest.raises(ValidationError):
            await connection.command("NOOP\r\nQUIT")

        assert connection.command_count == count
        assert len(transport.writes) == writes

    @pytest.mark.asyncio
    async def test_connection_loss_closes(self, smtp_config, test_message):
        connection, transport = await _authenticated(smtp_config, [CLOSE])

        result = await connection.send_mail(test_message)

        assert not result.success
        assert result.error
        assert not connection.connected
        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_command_count_strictly_increases(self, smtp_config, test_message):
        connection, _ = await _authenticated(
            smtp_config, SMTPTestHelper.transaction_replies() * 2
        )
        counts = [connection.command_count]

        await connection.send_mail(test_message)
        counts.append(connection.command_count)
        await connection.send_mail(test_message)
        counts.append(connection.command_count)

        assert counts == [LOGIN_WRITES, LOGIN_WRITES + 4, LOGIN_WRITES + 8]


class TestDotStuff:
    """Tests for dot_stuff"""

    def test_leading_dots_doubled(self):
        assert dot_stuff(".a\r\nb\r\n..c") == "..a\r\nb\r\n...c"

    def test_inner_dots_untouched(self):
        assert dot_stuff("a.b\r\nc.") == "a.b\r\nc."
