# =============================================================================
# Message Address
# =============================================================================
# A parsed message-set token from a FETCH/STORE command. Only three shapes
# are supported:
#   - ALL:    "1:*"
#   - RANGE:  "A:B" (or "A:*" for UIDs, meaning "A and above")
#   - SINGLE: "N"
#
# Whether the numbers are sequence numbers or UIDs is decided by the command,
# not by the address itself.
# =============================================================================

from dataclasses import dataclass
from enum import Enum, auto


class AddressKind(Enum):
    ALL = auto()
    RANGE = auto()
    SINGLE = auto()


@dataclass(frozen=True)
class Address:
    """
    A message-set token.

    Attributes:
        kind: Shape of the token.
        lo: First number (unused for ALL).
        hi: Last number, inclusive. None means unbounded.
    """
    kind: AddressKind
    lo: int = 1
    hi: int | None = None

    @classmethod
    def all(cls) -> "Address":
        return cls(AddressKind.ALL)

    @classmethod
    def single(cls, number: int) -> "Address":
        return cls(AddressKind.SINGLE, number, number)

    @classmethod
    def range(cls, lo: int, hi: int | None) -> "Address":
        return cls(AddressKind.RANGE, lo, hi)

    def __str__(self) -> str:
        if self.kind == AddressKind.ALL:
            return "1:*"
        if self.kind == AddressKind.SINGLE:
            return str(self.lo)
        return f"{self.lo}:{'*' if self.hi is None else self.hi}"
