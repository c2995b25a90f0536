"""Argument parser configuration for the wiremail CLI"""

import argparse

from wiremail.core.email.imap.constants import DEFAULT_PAGE_SIZE, IMAPFolders


## Argument Adding Utilities

def add_mailbox_argument(parser: argparse.ArgumentParser) -> None:
    """Add mailbox argument selecting which folder to operate on."""

    parser.add_argument(
        "--mailbox",
        default=IMAPFolders.INBOX,
        help=f"Mailbox name (default: {IMAPFolders.INBOX})"
    )

def add_uid_argument(parser: argparse.ArgumentParser) -> None:
    """Add the positional message UID."""

    parser.add_argument("uid", type=int, help="Message UID (from inbox command)")


## Command Setup Functions

def setup_status_commands(subparsers) -> None:
    """Setup verify and mailboxes commands."""

    verify_parser = subparsers.add_parser(
        "verify",
        help="Check that the mail servers accept our login",
        description="Connect and authenticate against SMTP, IMAP or both"
    )
    verify_parser.add_argument(
        "--type",
        dest="service",
        default="both",
        choices=["smtp", "imap", "both"],
        help="Which server to check (default: both)"
    )

    subparsers.add_parser(
        "mailboxes",
        help="List mailboxes on the IMAP server",
    )

    info_parser = subparsers.add_parser(
        "info",
        help="Show message counts for a mailbox",
    )
    add_mailbox_argument(info_parser)

def setup_reading_commands(subparsers) -> None:
    """Setup inbox and read commands."""

    inbox_parser = subparsers.add_parser(
        "inbox",
        help="List messages, newest first",
        description="Display one page of message headers from a mailbox"
    )
    add_mailbox_argument(inbox_parser)
    inbox_parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_PAGE_SIZE,
        help=f"Number of messages to display (default: {DEFAULT_PAGE_SIZE})"
    )
    inbox_parser.add_argument(
        "--start",
        type=int,
        default=0,
        help="Number of newest messages to skip (default: 0)"
    )
    inbox_parser.add_argument(
        "--all",
        action="store_true",
        help="Include messages not addressed to an allowed recipient"
    )

    read_parser = subparsers.add_parser(
        "read",
        help="Show one message",
    )
    add_uid_argument(read_parser)
    add_mailbox_argument(read_parser)

    search_parser = subparsers.add_parser(
        "search",
        help="Run a raw IMAP SEARCH and print matching UIDs",
    )
    search_parser.add_argument("criteria", help='IMAP search criteria, e.g. UNSEEN or FROM "a@b.com"')
    add_mailbox_argument(search_parser)

def setup_management_commands(subparsers) -> None:
    """Setup delete and mark commands."""

    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete a message and expunge the mailbox",
    )
    add_uid_argument(delete_parser)
    add_mailbox_argument(delete_parser)
    delete_parser.add_argument(
        "--yes",
        action="store_true",
        help="Do not ask for confirmation"
    )

    mark_parser = subparsers.add_parser(
        "mark",
        help="Mark a message as read or unread",
    )
    add_uid_argument(mark_parser)
    add_mailbox_argument(mark_parser)
    state_group = mark_parser.add_mutually_exclusive_group(required=True)
    state_group.add_argument(
        "--read",
        action="store_true",
        help="Mark the message as read"
    )
    state_group.add_argument(
        "--unread",
        action="store_true",
        help="Mark the message as unread"
    )

def setup_send_command(subparsers) -> None:
    """Setup the send command."""

    send_parser = subparsers.add_parser(
        "send",
        help="Send a message over SMTP",
        description="Compose and send a message; --markdown renders the branded HTML template"
    )
    send_parser.add_argument(
        "--to",
        action="append",
        required=True,
        help="Recipient address (repeat for several)"
    )
    send_parser.add_argument(
        "--cc",
        action="append",
        help="Cc address (repeat for several)"
    )
    send_parser.add_argument(
        "--bcc",
        action="append",
        help="Bcc address (repeat for several)"
    )
    send_parser.add_argument("--subject", required=True, help="Message subject")

    body_group = send_parser.add_argument_group("body", "Message content")
    body_group.add_argument("--text", help="Plain text body")
    body_group.add_argument("--html", help="HTML body")
    body_group.add_argument(
        "--markdown",
        help="Markdown body, rendered to both HTML and plain text"
    )

    send_parser.add_argument(
        "--attach",
        action="append",
        default=[],
        metavar="PATH",
        help="File to attach (repeat for several)"
    )


def setup_argument_parser() -> argparse.ArgumentParser:
    """Configure and return the argument parser with all subcommands"""

    parser = argparse.ArgumentParser(
        prog="wiremail",
        description="IMAP and SMTP mail client - read, send and manage email."
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log protocol traffic to the log file"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    setup_status_commands(subparsers)
    setup_reading_commands(subparsers)
    setup_management_commands(subparsers)
    setup_send_command(subparsers)

    return parser
