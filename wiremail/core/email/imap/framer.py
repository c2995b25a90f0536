"""IMAP response framing.

Splits the inbound byte stream into complete responses: every untagged line
the server sent for a command, followed by the command's tagged status line.
Literals (``{n}`` at the end of a line) announce ``n`` raw bytes that may hold
CRLF themselves; those bytes are taken verbatim before line scanning resumes.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from wiremail.core.email.constants import CRLF_BYTES

from .constants import IMAPResponse

_LITERAL = re.compile(rb"\{(\d+)\}$")
_STATUS = re.compile(r"^(OK|NO|BAD)\b\s*(.*)$", re.IGNORECASE | re.DOTALL)

UNTAGGED_PREFIX = b"* "


@dataclass
class TaggedResponse:
    """One complete response to a tagged command.

    ``untagged`` holds the raw bytes of each untagged response, literal
    payloads included, without the final CRLF.
    """

    tag: str
    status: str
    text: str
    tagged_line: bytes
    untagged: List[bytes] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == IMAPResponse.OK

    def untagged_lines(self) -> List[str]:
        """Untagged responses decoded as text, for line-oriented parsing."""
        return [raw.decode("utf-8", errors="replace") for raw in self.untagged]


def parse_status(tagged_line: bytes, tag: str):
    """Return ``(status, text)`` from a tagged line, ``UNKNOWN`` if unrecognised."""
    line = tagged_line.decode("utf-8", errors="replace")
    prefix = f"{tag} "

    if line.startswith(prefix):
        match = _STATUS.match(line[len(prefix) :])
        if match:
            return match.group(1).upper(), match.group(2) or ""

    return "UNKNOWN", line


class ResponseFramer:
    """Accumulates server bytes and hands out complete responses.

    Nothing is consumed until a whole response is buffered, so ``extract`` can
    be called again after every chunk and always rescans from the start of the
    unconsumed data.
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet handed out."""
        return len(self._buffer)

    def next_line(self) -> Optional[bytes]:
        """Pop one CRLF-terminated line (without the CRLF), or None if incomplete."""
        line_end = self._buffer.find(CRLF_BYTES)
        if line_end == -1:
            return None

        line = bytes(self._buffer[:line_end])
        del self._buffer[: line_end + 2]
        return line

    def extract(self, tag: str) -> Optional[TaggedResponse]:
        """Return the complete response for ``tag``, or None if more bytes are needed.

        Args:
            tag: Tag of the command in flight, e.g. ``A0003``

        Returns:
            TaggedResponse when the tagged line and everything before it is
            buffered; None otherwise, with the buffer left untouched
        """
        buffer = bytes(self._buffer)
        tag_prefix = f"{tag} ".encode("ascii")
        untagged: List[bytes] = []
        tagged: Optional[bytes] = None
        pos = 0

        while tagged is None:
            line_end = buffer.find(CRLF_BYTES, pos)
            if line_end == -1:
                return None

            line = buffer[pos:line_end]
            literal = _LITERAL.search(line)

            if literal:
                literal_end = line_end + 2 + int(literal.group(1))
                if len(buffer) < literal_end:
                    return None

                if line.startswith(UNTAGGED_PREFIX):
                    end = self._continuation_end(buffer, literal_end, tag_prefix)
                    if end is None:
                        return None

                    untagged.append(_strip_crlf(buffer[pos:end]))
                    pos = end
                elif line.startswith(tag_prefix):
                    tagged = buffer[pos:literal_end]
                    pos = literal_end
                else:
                    if untagged:
                        untagged[-1] += CRLF_BYTES + buffer[pos:literal_end]
                    pos = literal_end
                continue

            if line.startswith(UNTAGGED_PREFIX):
                untagged.append(line)
            elif line.startswith(tag_prefix):
                tagged = line
            elif line.strip() and untagged:
                untagged[-1] += CRLF_BYTES + line

            pos = line_end + 2

        del self._buffer[:pos]

        status, text = parse_status(tagged, tag)
        return TaggedResponse(
            tag=tag, status=status, text=text, tagged_line=tagged, untagged=untagged
        )

    @staticmethod
    def _continuation_end(
        buffer: bytes, start: int, tag_prefix: bytes
    ) -> Optional[int]:
        """Find where an untagged response carrying literals ends.

        Lines after the literal belong to the same response until one starts
        with ``* `` or the tag. Further literals on those lines are taken whole.
        Returns None when a continuation literal is not fully buffered.
        """
        end = start
        search = start

        while search < len(buffer):
            line_end = buffer.find(CRLF_BYTES, search)
            if line_end == -1:
                break

            line = buffer[search:line_end]
            if line.startswith(UNTAGGED_PREFIX) or line.startswith(tag_prefix):
                break

            literal = _LITERAL.search(line)
            if literal:
                literal_end = line_end + 2 + int(literal.group(1))
                if len(buffer) < literal_end:
                    return None
                end = search = literal_end
            else:
                end = search = line_end + 2

        return end


def _strip_crlf(data: bytes) -> bytes:
    return data[:-2] if data.endswith(CRLF_BYTES) else data
