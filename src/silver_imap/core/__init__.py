# =============================================================================
# Silver IMAP Core Module
# =============================================================================
# Core domain models. These are plain dataclasses and enums with no external
# dependencies, so they can be imported anywhere without circular imports.
#
#   - Message: A stored email message (id doubles as the IMAP UID)
#   - MessageFlags: IMAP system flags as a bitmask
#   - Folder: A mailbox folder
#   - Address: A parsed message-set token ("1:*", "A:B", "N")
# =============================================================================

from silver_imap.core.address import Address, AddressKind
from silver_imap.core.folder import DEFAULT_FOLDERS, Folder
from silver_imap.core.message import Message, MessageFlags

__all__ = [
    "Address",
    "AddressKind",
    "DEFAULT_FOLDERS",
    "Folder",
    "Message",
    "MessageFlags",
]
