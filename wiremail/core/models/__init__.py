from .email import (
    EmailAddress,
    EmailAttachment,
    EmailBody,
    EmailEnvelope,
    EmailHeader,
    EmailMessage,
    FetchResult,
    MailboxInfo,
    Recipients,
    Sender,
    SendResult,
)

__all__ = [
    "EmailAddress",
    "EmailAttachment",
    "EmailBody",
    "EmailEnvelope",
    "EmailHeader",
    "EmailMessage",
    "FetchResult",
    "MailboxInfo",
    "Recipients",
    "Sender",
    "SendResult",
]
