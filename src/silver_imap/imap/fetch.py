# =============================================================================
# FETCH Rendering
# =============================================================================
# Builds the untagged "* <seq> FETCH (...)" response for one message.
#
# Requested items are detected by case-insensitive matching against the
# joined item list, not by a full FETCH grammar. The body is assembled in a
# fixed order:
#
#   UID <id>  FLAGS (...)  RFC822.SIZE <n>  [one literal]
#
# At most one literal is emitted per message. Header fields win over the
# whole message when both are requested.
#
# Message text is normalized to CRLF line endings before any length is
# computed, because a literal's declared length must match the bytes that
# follow it exactly.
# =============================================================================

import re
from dataclasses import dataclass

from silver_imap.core import Message
from silver_imap.imap.response import ResponseWriter


# Headers returned when a client asks for HEADER.FIELDS without a list
DEFAULT_HEADER_FIELDS = (
    "FROM", "TO", "CC", "BCC", "SUBJECT", "DATE", "MESSAGE-ID", "PRIORITY",
    "X-PRIORITY", "REFERENCES", "NEWSGROUPS", "IN-REPLY-TO", "CONTENT-TYPE",
    "REPLY-TO",
)

_HEADER_FIELDS_RE = re.compile(
    r"BODY(?:\.PEEK)?\[HEADER\.FIELDS(?:\s*\(([^)]*)\))?\]",
    re.IGNORECASE,
)
_WHOLE_BODY_RE = re.compile(r"BODY(?:\.PEEK)?\[\]|\bRFC822\b(?!\.)", re.IGNORECASE)
_UID_RE = re.compile(r"\bUID\b", re.IGNORECASE)
_FLAGS_RE = re.compile(r"\bFLAGS\b", re.IGNORECASE)
_SIZE_RE = re.compile(r"\bRFC822\.SIZE\b", re.IGNORECASE)

# A bare LF not preceded by CR
_BARE_LF_RE = re.compile(r"(?<!\r)\n")


@dataclass
class FetchItems:
    """
    Which data items a FETCH asked for.

    Attributes:
        uid: UID requested (always forced on for UID FETCH).
        flags: FLAGS requested.
        size: RFC822.SIZE requested.
        header_fields: Upper-cased header names for a HEADER.FIELDS
                       request, in request order. None if not requested.
        whole_body: BODY[], BODY.PEEK[] or RFC822 requested.
    """
    uid: bool = False
    flags: bool = False
    size: bool = False
    header_fields: tuple[str, ...] | None = None
    whole_body: bool = False

    @classmethod
    def parse(cls, items: str, uid: bool = False) -> "FetchItems":
        """
        Detect requested items in a joined, parenthesis-stripped item list.

        Args:
            items: e.g. "UID FLAGS BODY.PEEK[HEADER.FIELDS (From Subject)]"
            uid: Force UID on (the UID FETCH path).

        Example:
            >>> FetchItems.parse("UID RFC822.SIZE").size
            True
        """
        header_fields = None
        match = _HEADER_FIELDS_RE.search(items)
        if match:
            names = re.split(r"[\s,]+", (match.group(1) or "").strip())
            requested = tuple(dict.fromkeys(n.upper() for n in names if n))
            header_fields = requested or DEFAULT_HEADER_FIELDS
            # Keep the field list out of the scalar checks below
            items = items[:match.start()] + items[match.end():]

        return cls(
            uid=uid or bool(_UID_RE.search(items)),
            flags=bool(_FLAGS_RE.search(items)),
            size=bool(_SIZE_RE.search(items)),
            header_fields=header_fields,
            whole_body=bool(_WHOLE_BODY_RE.search(items)),
        )


def normalize_crlf(text: str) -> str:
    """Convert every bare LF to CRLF. Existing CRLF pairs are left alone."""
    return _BARE_LF_RE.sub("\r\n", text)


def extract_header_fields(message_text: str, names: tuple[str, ...]) -> str:
    """
    Pick the requested header fields out of a CRLF-normalized message.

    Only the header section (everything before the first blank line) is
    searched. Fields are emitted in the order of names, not source order;
    a name that occurs several times yields every occurrence, and folded
    continuation lines stay attached to their field. Names that are absent
    are skipped.

    Args:
        message_text: CRLF-normalized RFC 5322 text.
        names: Upper-cased header names.

    Returns:
        The selected fields, each CRLF-terminated, followed by the blank
        line that ends a header block.
    """
    header_section = message_text.split("\r\n\r\n", 1)[0]

    # Group physical lines into logical fields
    fields: list[str] = []
    for line in header_section.split("\r\n"):
        if line[:1] in (" ", "\t") and fields:
            fields[-1] += "\r\n" + line
        elif line:
            fields.append(line)

    selected: list[str] = []
    for name in names:
        prefix = name + ":"
        selected.extend(f for f in fields if f.upper().startswith(prefix))

    return "".join(f + "\r\n" for f in selected) + "\r\n"


def render_fetch(
    out: ResponseWriter,
    sequence_number: int,
    message: Message,
    items: FetchItems,
) -> None:
    """
    Write the FETCH response for one message.

    Args:
        out: Response being built.
        sequence_number: The message's current sequence number.
        message: The message.
        items: Requested items.
    """
    text = normalize_crlf(message.raw_message)
    parts: list[str] = []

    if items.uid:
        parts.append(f"UID {message.id}")
    if items.flags:
        parts.append(f"FLAGS ({message.flags.to_imap()})")
    if items.size:
        parts.append(f"RFC822.SIZE {len(text.encode('utf-8'))}")

    if items.header_fields is not None:
        header_block = extract_header_fields(text, items.header_fields)
        out.fetch_literal(sequence_number, parts, "BODY[HEADER]", header_block.encode("utf-8"))
        return

    if items.whole_body:
        out.fetch_literal(sequence_number, parts, "BODY[]", text.encode("utf-8"))
        return

    if not parts:
        parts.append(f"FLAGS ({message.flags.to_imap()})")
    out.untagged(f"{sequence_number} FETCH ({' '.join(parts)})")
