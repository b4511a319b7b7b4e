# =============================================================================
# Sequence Resolver
# =============================================================================
# Turns a message-set token from FETCH/STORE into repository rows, each
# paired with its sequence number.
#
# Two addressing modes:
#   - SEQUENCE: numbers are 1-based positions within the selected folder
#   - UID:      numbers are repository ids
#
# Supported tokens:
#   "1:*"   every message (both modes)
#   "A:B"   ids A..B inclusive, UID mode only ("A:*" = A and above)
#   "N"     position N, or id N
#
# Plain FETCH/STORE do not accept ranges other than "1:*". Sequence numbers
# are never stored; they are recomputed from the ascending-id order on every
# call.
# =============================================================================

from enum import Enum, auto
from typing import TYPE_CHECKING

from silver_imap.core import Address, AddressKind, Message
from silver_imap.imap.response import ProtocolError

if TYPE_CHECKING:
    from silver_imap.storage.repository import Repository


# Largest value SQLite stores in an INTEGER column
MAX_NUMBER = 2**63 - 1


class AddressMode(Enum):
    """How the numbers in an address are interpreted."""
    SEQUENCE = auto()
    UID = auto()


def parse_address(token: str, mode: AddressMode) -> Address:
    """
    Parse a message-set token without touching the repository.

    Args:
        token: The client's token, e.g. "1:*", "3:7" or "4".
        mode: Addressing mode of the command.

    Returns:
        The parsed Address.

    Raises:
        ProtocolError: If the token is malformed, zero, above MAX_NUMBER,
                       a reversed range, or a range in SEQUENCE mode.
    """
    if token == "1:*":
        return Address.all()

    if ":" in token:
        if mode == AddressMode.SEQUENCE:
            raise ProtocolError("Invalid sequence number")

        lo_text, _, hi_text = token.partition(":")
        lo = _parse_number(lo_text)
        hi = None if hi_text == "*" else _parse_number(hi_text)
        if lo is None or (hi_text != "*" and hi is None):
            raise ProtocolError("Invalid UID range")
        if hi is not None and lo > hi:
            raise ProtocolError("Invalid UID range")
        return Address.range(lo, hi)

    number = _parse_number(token)
    if number is None:
        if mode == AddressMode.SEQUENCE:
            raise ProtocolError("Invalid sequence number")
        raise ProtocolError("Invalid UID")
    return Address.single(number)


async def resolve(
    repository: "Repository",
    folder: str,
    address: Address,
    mode: AddressMode,
) -> list[tuple[int, Message]]:
    """
    Look up the messages an address refers to.

    Args:
        repository: Message store.
        folder: The selected folder.
        address: Parsed address.
        mode: Addressing mode the address was parsed with.

    Returns:
        (sequence_number, message) pairs in ascending id order. Empty when
        nothing matches.
    """
    if address.kind == AddressKind.ALL:
        messages = await repository.list_ascending(folder)
        return list(enumerate(messages, start=1))

    if mode == AddressMode.SEQUENCE:
        message = await repository.get_by_offset(folder, address.lo - 1)
        return [(address.lo, message)] if message else []

    if address.kind == AddressKind.SINGLE:
        message = await repository.get_by_id(folder, address.lo)
        messages = [message] if message else []
    else:
        messages = await repository.get_by_id_range(folder, address.lo, address.hi)

    if not messages:
        return []

    # An id range is contiguous in the ascending order, so only the first
    # row needs a rank lookup.
    first = await repository.count_up_to(folder, messages[0].id)
    return list(enumerate(messages, start=first))


def _parse_number(text: str) -> int | None:
    """Parse a decimal number in 1..MAX_NUMBER, or return None."""
    if not (text.isascii() and text.isdigit()):
        return None
    number = int(text)
    return number if 0 < number <= MAX_NUMBER else None
