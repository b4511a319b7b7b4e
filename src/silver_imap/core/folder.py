# =============================================================================
# Folder Model
# =============================================================================
# Represents a mailbox folder (IMAP "mailbox"). The server exposes a fixed
# set of folders, seeded into the database when the schema is created:
#   - INBOX: Primary incoming mail
#   - Sent: Copies of sent messages
#   - Drafts: Unsent message drafts
#   - Trash: Deleted messages
#
# Folders are read-only for the protocol engine: it lists them and checks
# that a SELECT/EXAMINE/STATUS target exists, nothing more.
# =============================================================================

from dataclasses import dataclass, field


@dataclass
class Folder:
    """
    A mailbox folder.

    Attributes:
        name: Full folder name (e.g., "INBOX", "Drafts").
        delimiter: Hierarchy delimiter reported by LIST.
        attributes: LIST attributes such as "\\Drafts" or "\\Trash".

    Example:
        >>> Folder(name="Trash", attributes=["\\\\Trash"])
    """

    name: str
    delimiter: str = "/"
    attributes: list[str] = field(default_factory=list)

    @property
    def list_attributes(self) -> str:
        """
        Attributes as rendered in a LIST response.

        Folders without special attributes report \\Unmarked.
        """
        return " ".join(self.attributes) if self.attributes else "\\Unmarked"

    def matches(self, name: str) -> bool:
        """
        Check whether a client-supplied name refers to this folder.

        INBOX is case-insensitive (RFC 3501 5.1); other names are exact.
        """
        if self.name.upper() == "INBOX":
            return name.upper() == "INBOX"
        return self.name == name

    def __str__(self) -> str:
        return self.name


# The fixed folder set seeded at schema creation
DEFAULT_FOLDERS: tuple[Folder, ...] = (
    Folder(name="INBOX"),
    Folder(name="Sent", attributes=["\\Sent"]),
    Folder(name="Drafts", attributes=["\\Drafts"]),
    Folder(name="Trash", attributes=["\\Trash"]),
)
