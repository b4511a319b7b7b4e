# =============================================================================
# Storage Module
# =============================================================================
# Handles persistent storage using SQLite.
#
# Provides:
#   - Database initialization and the fixed folder set
#   - Folder-scoped message queries ordered by id (the UID)
#   - Idempotent flag mutation
#   - Async operations via aiosqlite
#
# The database is stored in the XDG data directory
# (~/.local/share/silver-imap/) unless configured otherwise.
# =============================================================================

from silver_imap.storage.database import Database
from silver_imap.storage.repository import Repository, RepositoryError

__all__ = ["Database", "Repository", "RepositoryError"]
