"""Rich renderables for mailbox listings and message bodies."""

from typing import Dict, List, Optional

import html2text
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from wiremail.core.models import EmailBody, EmailHeader, FetchResult, MailboxInfo
from wiremail.utils.console import get_console


def _truncate(text: str, max_length: int) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def html_to_text(html: str) -> str:
    """Readable text for an HTML-only message, keeping link targets."""
    converter = html2text.HTML2Text()
    converter.ignore_links = False
    converter.ignore_images = False
    return converter.handle(html).strip()


class EmailTable:
    """Mailbox listing, one row per header."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def display(self, result: FetchResult, title: str = "Inbox") -> None:
        """Print one page of headers with the total underneath.

        Args:
            result: Page returned by IMAPClient.fetch_emails
            title: Table title
        """
        if not result.headers:
            self.console.print("[yellow]No emails to display[/yellow]")
            return

        table = Table(title=title)
        table.add_column("UID", style="cyan", justify="right", no_wrap=True)
        table.add_column("", width=2, justify="center")
        table.add_column("From", style="magenta", min_width=20)
        table.add_column("Subject", style="green", min_width=20)
        table.add_column("Date", style="yellow")
        table.add_column("Size", style="blue", justify="right")

        for header in result.headers:
            table.add_row(*self._build_row(header))

        self.console.print(table)
        self.console.print(
            f"[dim]Showing {len(result.headers)} of {result.total} messages[/dim]"
        )

    def _build_row(self, header: EmailHeader) -> List[str]:
        envelope = header.envelope
        sender = str(envelope.from_[0]) if envelope.from_ else "Unknown"

        return [
            str(header.uid),
            "" if header.is_read else "●",
            escape(_truncate(sender, 30)),
            escape(_truncate(envelope.subject, 40)),
            envelope.date,
            _format_size(header.size),
        ]


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def display_mailboxes(mailboxes: List[str], console: Optional[Console] = None) -> None:
    output_console = console or get_console()

    if not mailboxes:
        output_console.print("[yellow]No mailboxes found[/yellow]")
        return

    table = Table(title="Mailboxes")
    table.add_column("Name", style="cyan")
    for name in mailboxes:
        table.add_row(escape(name))

    output_console.print(table)


def display_mailbox_info(info: MailboxInfo, console: Optional[Console] = None) -> None:
    output_console = console or get_console()

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Messages", str(info.exists))
    table.add_row("Recent", str(info.recent))
    table.add_row("UID next", str(info.uid_next))
    table.add_row("UID validity", str(info.uid_validity))

    output_console.print(Panel(table, title=escape(info.name), border_style="cyan"))


def display_body(body: EmailBody, console: Optional[Console] = None) -> None:
    """Print the message headers and its text, converting HTML when that is all there is."""
    output_console = console or get_console()

    header_fields: Dict[str, str] = {
        "From": body.headers.get("from", ""),
        "To": body.headers.get("to", ""),
        "Date": body.headers.get("date", ""),
        "Subject": body.headers.get("subject", ""),
    }

    meta = Table(show_header=False, box=None)
    meta.add_column("Field", style="bold cyan")
    meta.add_column("Value")
    for key, value in header_fields.items():
        if value:
            meta.add_row(key, escape(value))

    output_console.print(Panel(meta, title=f"Message {body.uid}", border_style="cyan"))

    if body.text:
        output_console.print(body.text, markup=False, highlight=False)
    elif body.html:
        output_console.print(html_to_text(body.html), markup=False, highlight=False)
    else:
        output_console.print("[dim](no readable content)[/dim]")
