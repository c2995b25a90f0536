"""Command handlers for the wiremail CLI.

Each handler takes the parsed arguments and a console and returns True on
success. Errors from the mail clients propagate to ``dispatch_command``,
which prints them and sets the exit code.
"""

import mimetypes
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from rich.console import Console

from wiremail.core.email.imap import IMAPClient
from wiremail.core.email.smtp import SMTPClient
from wiremail.core.email.templates import generate_email_from_markdown
from wiremail.core.models import EmailAttachment, EmailMessage
from wiremail.utils.console import print_error, print_success, print_warning
from wiremail.utils.errors import MissingRequiredFieldError, ValidationError
from wiremail.utils.logging import async_log_call, get_logger, log_event

from .display import (
    EmailTable,
    display_body,
    display_mailbox_info,
    display_mailboxes,
)

logger = get_logger(__name__)

Handler = Callable[..., Awaitable[bool]]


## Status


@async_log_call
async def handle_verify(args, console: Console) -> bool:
    """Check SMTP and/or IMAP login."""
    checks: Dict[str, Optional[bool]] = {"smtp": None, "imap": None}

    if args.service in ("smtp", "both"):
        checks["smtp"] = await SMTPClient.from_env().verify()
    if args.service in ("imap", "both"):
        checks["imap"] = await IMAPClient.from_env().verify()

    for name, ok in checks.items():
        if ok is None:
            continue
        if ok:
            print_success(f"{name.upper()} connection verified", console)
        else:
            print_error(f"{name.upper()} connection failed", console)

    return all(ok for ok in checks.values() if ok is not None)


@async_log_call
async def handle_mailboxes(args, console: Console) -> bool:
    mailboxes = await IMAPClient.from_env().list_mailboxes()
    display_mailboxes(mailboxes, console)
    return True


@async_log_call
async def handle_info(args, console: Console) -> bool:
    info = await IMAPClient.from_env().get_mailbox_info(args.mailbox)
    display_mailbox_info(info, console)
    return True


## Reading


@async_log_call
async def handle_inbox(args, console: Console) -> bool:
    """List one page of headers, newest first."""
    if args.limit <= 0 or args.start < 0:
        raise ValidationError("--limit must be positive and --start not negative")

    result = await IMAPClient.from_env().fetch_emails(
        args.mailbox,
        start=args.start,
        count=args.limit,
        filter_by_allowed_recipients=not args.all,
    )
    EmailTable(console).display(result, title=args.mailbox)
    return True


@async_log_call
async def handle_read(args, console: Console) -> bool:
    body = await IMAPClient.from_env().get_email_body(args.mailbox, args.uid)
    display_body(body, console)
    return True


@async_log_call
async def handle_search(args, console: Console) -> bool:
    uids = await IMAPClient.from_env().search_emails(args.mailbox, args.criteria)

    if not uids:
        print_warning("No messages matched", console)
    else:
        console.print(" ".join(str(uid) for uid in uids))
    return True


## Management


@async_log_call
async def handle_delete(args, console: Console) -> bool:
    """Delete a message after confirmation unless ``--yes`` was given."""
    if not args.yes:
        response = console.input(f"Delete message {args.uid} from {args.mailbox}? (y/n): ")
        if response.strip().lower() not in ("y", "yes"):
            print_warning("Deletion cancelled", console)
            return True

    await IMAPClient.from_env().delete_email(args.mailbox, args.uid)
    print_success(f"Deleted message {args.uid}", console)
    log_event("email_deleted", "Email deleted", uid=args.uid, mailbox=args.mailbox)
    return True


@async_log_call
async def handle_mark(args, console: Console) -> bool:
    client = IMAPClient.from_env()

    if args.read:
        await client.mark_as_read(args.mailbox, args.uid)
        print_success(f"Marked message {args.uid} as read", console)
    else:
        await client.mark_as_unread(args.mailbox, args.uid)
        print_success(f"Marked message {args.uid} as unread", console)

    return True


## Sending


def load_attachments(paths: List[str]) -> List[EmailAttachment]:
    """Read each file into an attachment, guessing its content type.

    Raises:
        ValidationError: If a file cannot be read
    """
    attachments = []

    for path in paths:
        file_path = Path(path)
        try:
            data = file_path.read_bytes()

        except OSError as e:
            raise ValidationError(
                f"Cannot read attachment {path}: {e.strerror or str(e)}",
                details={"path": path},
            ) from e

        content_type, _ = mimetypes.guess_type(file_path.name)
        attachments.append(
            EmailAttachment(
                filename=file_path.name,
                content=data,
                content_type=content_type or "application/octet-stream",
            )
        )

    return attachments


def build_message(args) -> EmailMessage:
    """Turn send arguments into an EmailMessage.

    Raises:
        MissingRequiredFieldError: If no body was given
        ValidationError: If an attachment cannot be read
    """
    text, html = args.text, args.html

    if args.markdown:
        html, text = generate_email_from_markdown(args.subject, args.markdown)

    if not (text or html):
        raise MissingRequiredFieldError(
            "A message body is required (--text, --html or --markdown)",
            details={"field": "body"},
        )

    return EmailMessage(
        to=args.to,
        cc=args.cc,
        bcc=args.bcc,
        subject=args.subject,
        text=text,
        html=html,
        attachments=load_attachments(args.attach),
    )


@async_log_call
async def handle_send(args, console: Console) -> bool:
    message = build_message(args)
    result = await SMTPClient.from_env().send(message)

    if not result.success:
        print_error(f"Send failed: {result.error or 'unknown error'}", console)
        return False

    print_success(f"Message sent: {result.message_id}", console)
    return True


COMMAND_HANDLERS: Dict[str, Handler] = {
    "verify": handle_verify,
    "mailboxes": handle_mailboxes,
    "info": handle_info,
    "inbox": handle_inbox,
    "read": handle_read,
    "search": handle_search,
    "delete": handle_delete,
    "mark": handle_mark,
    "send": handle_send,
}
