"""
Tests for the IMAP client facade

Tests cover:
- One connection per call, disconnected afterwards
- Recipient filtering and paging
- Verification and configuration errors
"""
import pytest

from wiremail.core.email.imap import IMAPClient
from wiremail.core.email.imap.connection import IMAPConnection
from wiremail.utils.errors import IMAPError, MissingConfigError

from .test_helpers import FakeTransport, IMAPTestHelper

tagged = IMAPTestHelper.tagged

# CAPABILITY, STARTTLS and LOGIN use tags 1-3
FIRST_TAG = 4


class ScriptedConnections:
    """Connection factory handing each call its own scripted transport"""

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.transports = []

    def __call__(self, config):
        transport = FakeTransport(
            IMAPTestHelper.GREETING,
            IMAPTestHelper.login_replies() + self.scripts.pop(0),
        )
        self.transports.append(transport)
        return IMAPConnection(config, transport=transport)


def _logout(n):
    return b"* BYE bye\r\n" + tagged(n, "OK LOGOUT completed")


class TestFetchEmails:
    """Tests for fetch_emails"""

    @pytest.mark.asyncio
    async def test_filtered_page(self, imap_config):
        connections = ScriptedConnections(
            [
                IMAPTestHelper.select_reply(4),
                b"* SEARCH 3 10 7\r\n" + tagged(5, "OK SEARCH completed"),
                IMAPTestHelper.fetch_line(1, 7)
                + IMAPTestHelper.fetch_line(2, 10, subject="Latest")
                + tagged(6, "OK FETCH completed"),
                _logout(7),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        result = await client.fetch_emails("INBOX", start=0, count=2)

        assert [h.uid for h in result.headers] == [10, 7]
        assert result.headers[0].envelope.subject == "Latest"
        assert result.total == 3

        commands = connections.transports[0].sent_commands()
        assert commands[4] == 'UID SEARCH OR (TO "us@test.com") (TO "support@test.com")'
        assert commands[5] == "UID FETCH 10,7 (UID FLAGS ENVELOPE RFC822.SIZE)"
        assert commands[-1] == "LOGOUT"
        assert connections.transports[0].close_calls == 1

    @pytest.mark.asyncio
    async def test_second_page(self, imap_config):
        connections = ScriptedConnections(
            [
                IMAPTestHelper.select_reply(4),
                b"* SEARCH 1 2 3 4 5\r\n" + tagged(5, "OK"),
                IMAPTestHelper.fetch_line(1, 3) + tagged(6, "OK"),
                _logout(7),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        result = await client.fetch_emails("INBOX", start=2, count=1)

        assert connections.transports[0].sent_commands()[5].startswith("UID FETCH 3 ")
        assert result.total == 5

    @pytest.mark.asyncio
    async def test_no_matching_recipients(self, imap_config):
        connections = ScriptedConnections(
            [
                IMAPTestHelper.select_reply(4),
                b"* SEARCH\r\n" + tagged(5, "OK"),
                _logout(6),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        result = await client.fetch_emails()

        assert result.headers == []
        assert result.total == 0
        assert "UID FETCH" not in " ".join(connections.transports[0].sent_commands())

    @pytest.mark.asyncio
    async def test_unfiltered_page(self, imap_config):
        connections = ScriptedConnections(
            [
                IMAPTestHelper.select_reply(4, exists=3),
                IMAPTestHelper.fetch_line(1, 1)
                + IMAPTestHelper.fetch_line(2, 2)
                + IMAPTestHelper.fetch_line(3, 3)
                + tagged(5, "OK"),
                _logout(6),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        result = await client.fetch_emails(filter_by_allowed_recipients=False)

        assert [h.uid for h in result.headers] == [3, 2, 1]
        assert result.total == 3
        assert connections.transports[0].sent_commands()[4].startswith("FETCH 1:3 ")


class TestMessageOperations:
    """Tests for per-message operations"""

    @pytest.mark.asyncio
    async def test_each_call_uses_new_connection(self, imap_config):
        connections = ScriptedConnections(
            [IMAPTestHelper.select_reply(4), tagged(5, "OK"), _logout(6)],
            [IMAPTestHelper.select_reply(4), tagged(5, "OK"), _logout(6)],
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        await client.mark_as_read("INBOX", 9)
        await client.mark_as_unread("INBOX", 9)

        assert len(connections.transports) == 2
        assert connections.transports[0].sent_commands()[4] == "UID STORE 9 +FLAGS (\\Seen)"
        assert connections.transports[1].sent_commands()[4] == "UID STORE 9 -FLAGS (\\Seen)"
        assert all(t.close_calls == 1 for t in connections.transports)

    @pytest.mark.asyncio
    async def test_delete_email(self, imap_config):
        connections = ScriptedConnections(
            [
                IMAPTestHelper.select_reply(4),
                tagged(5, "OK STORE completed"),
                tagged(6, "OK EXPUNGE completed"),
                _logout(7),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        await client.delete_email("INBOX", 5)

        assert connections.transports[0].sent_commands()[4:6] == [
            "UID STORE 5 +FLAGS (\\Deleted)",
            "EXPUNGE",
        ]

    @pytest.mark.asyncio
    async def test_failure_still_disconnects(self, imap_config):
        connections = ScriptedConnections(
            [tagged(4, "NO no such mailbox"), _logout(5)]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        with pytest.raises(IMAPError):
            await client.get_email_body("Missing", 1)

        transport = connections.transports[0]
        assert transport.sent_commands()[-1] == "LOGOUT"
        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_list_mailboxes(self, imap_config):
        connections = ScriptedConnections(
            [
                b'* LIST () "/" INBOX\r\n* LIST () "/" "Sent Items"\r\n' + tagged(4, "OK"),
                _logout(5),
            ]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        assert await client.list_mailboxes() == ["INBOX", "Sent Items"]

    @pytest.mark.asyncio
    async def test_get_mailbox_info(self, imap_config):
        connections = ScriptedConnections(
            [IMAPTestHelper.select_reply(4, exists=12, recent=1), _logout(5)]
        )
        client = IMAPClient(imap_config, connection_factory=connections)

        info = await client.get_mailbox_info()

        assert info.name == "INBOX"
        assert info.exists == 12
        assert info.recent == 1


class TestVerifyAndConfig:
    """Tests for verify and configuration handling"""

    @pytest.mark.asyncio
    async def test_verify_success(self, imap_config):
        connections = ScriptedConnections(
            [b'* LIST () "/" INBOX\r\n' + tagged(4, "OK"), _logout(5)]
        )

        assert await IMAPClient(imap_config, connection_factory=connections).verify()

    @pytest.mark.asyncio
    async def test_verify_failure_returns_false(self, imap_config):
        def refuse(config):
            return IMAPConnection(
                config, transport=FakeTransport(b"* BYE go away\r\n")
            )

        assert not await IMAPClient(imap_config, connection_factory=refuse).verify()

    @pytest.mark.asyncio
    async def test_missing_host(self, imap_config):
        config = imap_config.model_copy(update={"host": ""})
        client = IMAPClient(config, connection_factory=ScriptedConnections())

        with pytest.raises(MissingConfigError):
            await client.list_mailboxes()

    def test_get_config_hides_password(self, imap_config):
        config = IMAPClient(imap_config).get_config()

        assert "password" not in config
        assert config["host"] == "imap.test.com"

    def test_from_env(self):
        client = IMAPClient.from_env(
            {"IMAP_HOST": "imap.example.com", "IMAP_USER": "u", "IMAP_PASS": "p"}
        )

        assert client.config.host == "imap.example.com"
        assert client.config.port == 993
