"""Email domain models.

Plain dataclasses handed back to callers for display or persistence. Inbound
models (envelopes, headers, bodies, mailbox state) come from the IMAP side;
outbound models (messages, attachments, send results) feed the SMTP side.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

Recipients = Union[str, List[str]]


## Inbound


@dataclass
class EmailAddress:
    """A parsed address: display name (possibly empty) and ``mailbox@host``."""

    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>" if self.name else self.email


@dataclass
class EmailEnvelope:
    """IMAP ENVELOPE summary.

    ``cc`` and ``reply_to`` are ``None`` when the server sent NIL, so callers
    can tell "absent" apart from "present but empty".
    """

    date: str = ""
    subject: str = "(No Subject)"
    from_: List[EmailAddress] = field(default_factory=list)
    to: List[EmailAddress] = field(default_factory=list)
    cc: Optional[List[EmailAddress]] = None
    reply_to: Optional[List[EmailAddress]] = None
    message_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmailHeader:
    """One row of a mailbox listing."""

    uid: int
    flags: List[str]
    envelope: EmailEnvelope
    size: int = 0

    @property
    def is_read(self) -> bool:
        return "\\Seen" in self.flags

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmailBody:
    """Decoded message content. Header keys are lower-cased."""

    uid: int
    text: Optional[str] = None
    html: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MailboxInfo:
    """State reported by SELECT, valid while the mailbox stays selected."""

    name: str
    flags: List[str] = field(default_factory=list)
    exists: int = 0
    recent: int = 0
    unseen: int = 0
    uid_next: int = 0
    uid_validity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FetchResult:
    """A page of headers plus the total number of candidate messages."""

    headers: List[EmailHeader]
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {"headers": [h.to_dict() for h in self.headers], "total": self.total}


## Outbound


@dataclass
class Sender:
    """Display name and address used in ``From`` and ``MAIL FROM``."""

    name: str
    email: str


@dataclass
class EmailAttachment:
    """A file attached to an outbound message."""

    filename: str
    content: Union[str, bytes]
    content_type: str = "application/octet-stream"

    @property
    def data(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return self.content


@dataclass
class EmailMessage:
    """An outbound message.

    ``to``, ``cc`` and ``bcc`` accept a single address or a list, each entry
    either bare (``a@x.com``) or with a display name (``Ann <a@x.com>``).
    """

    to: Recipients
    subject: str
    cc: Optional[Recipients] = None
    bcc: Optional[Recipients] = None
    text: Optional[str] = None
    html: Optional[str] = None
    reply_to: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    attachments: List[EmailAttachment] = field(default_factory=list)
    from_: Optional[Sender] = None


@dataclass
class SendResult:
    """Outcome of one send. ``message_id`` is set even on failure when known."""

    success: bool
    message_id: str
    response: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
