# =============================================================================
# Session State
# =============================================================================
# Per-connection protocol state:
#
#   NOT_AUTHENTICATED --LOGIN--> AUTHENTICATED --SELECT/EXAMINE--> SELECTED
#                                     ^                                |
#                                     +---- SELECT of unknown folder --+
#
# LOGOUT is terminal from any state. A Session is owned by exactly one
# connection task and is never shared.
# =============================================================================

from dataclasses import dataclass
from enum import IntEnum

from silver_imap.imap.response import PreconditionError


class SessionState(IntEnum):
    """
    Protocol states, ordered so that a higher state satisfies a lower
    requirement (SELECTED implies AUTHENTICATED).
    """
    NOT_AUTHENTICATED = 0
    AUTHENTICATED = 1
    SELECTED = 2
    LOGOUT = 3


@dataclass
class Session:
    """
    State of one client connection.

    Attributes:
        peer: Remote address, for logging.
        authenticated: True after a successful LOGIN.
        username: Name given at LOGIN. Not verified against anything.
        selected_folder: Currently selected folder, None if none.
        read_only: True when the folder was opened with EXAMINE.
        logged_out: True once LOGOUT has been answered.
    """
    peer: str = ""
    authenticated: bool = False
    username: str | None = None
    selected_folder: str | None = None
    read_only: bool = False
    logged_out: bool = False

    @property
    def state(self) -> SessionState:
        if self.logged_out:
            return SessionState.LOGOUT
        if not self.authenticated:
            return SessionState.NOT_AUTHENTICATED
        if self.selected_folder is None:
            return SessionState.AUTHENTICATED
        return SessionState.SELECTED

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def login(self, username: str) -> None:
        self.authenticated = True
        self.username = username

    def select(self, folder: str, read_only: bool = False) -> None:
        """Select a folder, replacing any previous selection."""
        self.selected_folder = folder
        self.read_only = read_only

    def deselect(self) -> None:
        self.selected_folder = None
        self.read_only = False

    def logout(self) -> None:
        self.logged_out = True

    # -------------------------------------------------------------------------
    # Gates
    # -------------------------------------------------------------------------

    def require(self, required: SessionState) -> None:
        """
        Check that the session may run a command needing the given state.

        Authentication is checked before selection, so an unauthenticated
        client is always told to authenticate first.

        Raises:
            PreconditionError: If the requirement is not met.
        """
        if required >= SessionState.AUTHENTICATED and not self.authenticated:
            raise PreconditionError("Please authenticate first")
        if required >= SessionState.SELECTED and self.selected_folder is None:
            raise PreconditionError("No folder selected")

    def require_writable(self) -> None:
        """
        Raises:
            PreconditionError: If the folder was opened with EXAMINE.
        """
        if self.read_only:
            raise PreconditionError("Mailbox is read-only", code="READ-ONLY")
