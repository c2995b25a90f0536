"""
Shared test fixtures and configuration for pytest
"""
import os
import tempfile

# Keep logs out of the real home directory; must run before wiremail is imported
os.environ.setdefault("WIREMAIL_HOME", tempfile.mkdtemp(prefix="wiremail-tests-"))
os.environ.setdefault("WIREMAIL_LOG_TO_FILE", "false")

import pytest

from wiremail.core.models import EmailMessage
from wiremail.utils.config import IMAPConfig, SMTPConfig
from wiremail.utils.console import reset_console


@pytest.fixture
def imap_config():
    """IMAP account over plaintext, so tests exercise STARTTLS"""
    return IMAPConfig(
        host="imap.test.com",
        port=143,
        secure=False,
        username="user@test.com",
        password="secret",
        timeout=5.0,
        allowed_recipients=["us@test.com", "support@test.com"],
    )


@pytest.fixture
def smtp_config():
    """SMTP account over plaintext with a default sender"""
    return SMTPConfig(
        host="smtp.test.com",
        port=587,
        secure=False,
        username="user@test.com",
        password="secret",
        from_name="Test Sender",
        from_email="sender@test.com",
        timeout=5.0,
    )


@pytest.fixture
def test_message():
    """Simple plain text message"""
    return EmailMessage(to=["a@x.com"], subject="Hello", text="body")


@pytest.fixture(autouse=True)
def clear_env_vars():
    """Clear mail environment variables before each test"""
    env_vars = [
        "IMAP_HOST", "IMAP_PORT", "IMAP_SECURE", "IMAP_USER", "IMAP_PASS",
        "IMAP_TIMEOUT", "IMAP_ALLOWED_RECIPIENTS", "IMAP_VERIFY_TLS",
        "SMTP_HOST", "SMTP_PORT", "SMTP_SECURE", "SMTP_USER", "SMTP_PASS",
        "SMTP_FROM_NAME", "SMTP_FROM_EMAIL", "SMTP_TIMEOUT", "SMTP_VERIFY_TLS",
    ]
    original = {}
    for var in env_vars:
        original[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    yield

    # Restore original environment
    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]


@pytest.fixture(autouse=True)
def fresh_console():
    """Each test gets its own shared console"""
    reset_console()
    yield
    reset_console()
