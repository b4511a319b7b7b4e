# =============================================================================
# Message Model
# =============================================================================
# Represents a stored email message as the IMAP engine sees it:
#   - Identity: the repository-assigned id, which doubles as the IMAP UID
#   - Envelope summary columns (subject, sender, recipient, date)
#   - The raw RFC 5322 text, served verbatim by FETCH
#   - IMAP system flags, stored as a bitmask
#
# Sequence numbers are NOT part of the model. They are the live rank of a
# message within its folder and are recomputed on every request.
# =============================================================================

from dataclasses import dataclass
from datetime import datetime
from enum import IntFlag


class MessageFlags(IntFlag):
    """
    IMAP system flags (RFC 3501), stored as a bitmask.

    Usage:
        # Check flags
        if msg.flags & MessageFlags.SEEN:
            print("Message has been read")

        # Render for the wire
        MessageFlags.SEEN | MessageFlags.FLAGGED  ->  "\\Seen \\Flagged"
    """
    NONE = 0            # No flags set
    SEEN = 1 << 0       # Message has been read (\\Seen)
    ANSWERED = 1 << 1   # Message has been replied to (\\Answered)
    FLAGGED = 1 << 2    # User-flagged / starred (\\Flagged)
    DELETED = 1 << 3    # Marked for deletion (\\Deleted)
    DRAFT = 1 << 4      # Is a draft (\\Draft)

    def to_imap(self) -> str:
        """Space-joined IMAP flag tokens, in canonical order."""
        return " ".join(
            token for flag, token in _FLAG_TOKENS if self & flag
        )


# Canonical wire order used by FLAGS responses
_FLAG_TOKENS = (
    (MessageFlags.SEEN, "\\Seen"),
    (MessageFlags.ANSWERED, "\\Answered"),
    (MessageFlags.FLAGGED, "\\Flagged"),
    (MessageFlags.DELETED, "\\Deleted"),
    (MessageFlags.DRAFT, "\\Draft"),
)


@dataclass
class Message:
    """
    A message row from the store.

    Attributes:
        id: Repository-assigned identifier. Monotonic, unique across the
            whole store, never reused. Served to clients as the UID.
        folder: Name of the folder holding the message.

        subject: Subject line (summary column, not parsed from raw_message).
        sender: From address.
        recipient: To address.
        date_sent: When the message was sent.

        raw_message: Full RFC 5322 text. May use bare LF line endings;
                     the FETCH renderer normalizes to CRLF.
        flags: IMAP system flags.

    Example:
        >>> message = Message(
        ...     folder="INBOX",
        ...     subject="Hello",
        ...     sender="alice@example.com",
        ...     recipient="bob@example.com",
        ...     raw_message="Subject: Hello\\r\\n\\r\\nHi Bob\\r\\n",
        ... )
    """

    folder: str = "INBOX"

    # Envelope summary
    subject: str = ""
    sender: str = ""
    recipient: str = ""
    date_sent: datetime | None = None

    # Content and state
    raw_message: str = ""
    flags: MessageFlags = MessageFlags.NONE

    # Database field
    id: int | None = None               # Primary key / UID (None until saved)

    @property
    def is_seen(self) -> bool:
        """Returns True if the message carries \\Seen."""
        return bool(self.flags & MessageFlags.SEEN)

    def __repr__(self) -> str:
        return (
            f"Message(id={self.id}, folder={self.folder!r}, "
            f"subject={self.subject!r}, flags={self.flags.to_imap()!r})"
        )
