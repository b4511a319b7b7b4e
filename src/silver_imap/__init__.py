# =============================================================================
# Silver IMAP: A Small IMAP Server Backed by SQLite
# =============================================================================
#
# Silver IMAP speaks a reduced subset of IMAP4rev1 over plain TCP and serves
# messages out of a SQLite database. It implements just enough for a
# generic mail client to list folders, select a mailbox and read mail.
#
# Features:
#   - LOGIN (any non-empty credentials), LIST, SELECT/EXAMINE, STATUS
#   - FETCH / UID FETCH with header-field and whole-message literals
#   - SEARCH / UID SEARCH (every message matches)
#   - STORE / UID STORE for +FLAGS (\Seen)
#   - One asyncio task per connection, idle timeout
#   - XDG Base Directory compliant configuration
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "silver-imap"

# Main entry point - this is what gets called by the 'silver-imap' command
from silver_imap.app import main

__all__ = ["main", "__version__", "__app_name__"]
