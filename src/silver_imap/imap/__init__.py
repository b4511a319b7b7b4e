# =============================================================================
# IMAP Module
# =============================================================================
# The protocol engine:
#   - Tokenizing client command lines
#   - The per-connection state machine (unauthenticated / authenticated /
#     selected)
#   - Resolving sequence-number and UID addresses to stored messages
#   - Rendering tagged, untagged and literal responses
#   - The asyncio listener that runs one read loop per connection
#
# Only a reduced subset of IMAP4rev1 is implemented: enough for a generic
# mail client to list, select and read a mailbox.
# =============================================================================

from silver_imap.imap.handlers import CAPABILITIES, CommandHandlers
from silver_imap.imap.response import (
    IMAPError,
    PreconditionError,
    ProtocolError,
    ResponseWriter,
    Status,
)
from silver_imap.imap.sequence import AddressMode, parse_address, resolve
from silver_imap.imap.server import IMAPServer
from silver_imap.imap.session import Session, SessionState
from silver_imap.imap.tokenizer import Command, tokenize

__all__ = [
    # Server
    "IMAPServer",
    "CommandHandlers",
    "CAPABILITIES",
    # Protocol state
    "Session",
    "SessionState",
    # Parsing
    "Command",
    "tokenize",
    "AddressMode",
    "parse_address",
    "resolve",
    # Responses
    "ResponseWriter",
    "Status",
    "IMAPError",
    "ProtocolError",
    "PreconditionError",
]
