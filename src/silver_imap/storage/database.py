# =============================================================================
# Database Connection and Schema Management
# =============================================================================
# Manages the SQLite database connection and schema.
#
# Schema overview:
#   - mails: Stored messages (id is the IMAP UID)
#   - folders: The fixed folder set exposed by LIST
#   - schema_version: Migration bookkeeping
#
# Uses aiosqlite for async operations, with WAL mode so that concurrent
# readers don't block on a writer.
# =============================================================================

import logging
from pathlib import Path

import aiosqlite

from silver_imap.core import DEFAULT_FOLDERS


logger = logging.getLogger(__name__)

# Current schema version - increment when making schema changes
SCHEMA_VERSION = 1


class Database:
    """
    Manages the SQLite database connection and schema.

    A single connection is shared by every IMAP session. aiosqlite runs
    all statements on one worker thread, so each repository call executes
    atomically with respect to the others.

    Usage:
        >>> db = Database(Path("mails.db"))
        >>> await db.connect()
        >>> await db.conn.execute("SELECT ...")
        >>> await db.close()

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database manager.

        Args:
            db_path: Path to database file.
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """
        Open the database connection and ensure schema is up to date.

        Creates the database file if it doesn't exist.
        """
        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)

        # Enable WAL mode for better concurrent performance
        await self._connection.execute("PRAGMA journal_mode = WAL")

        await self._init_schema()
        logger.debug(f"Database ready at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """
        Get the active database connection.

        Raises:
            RuntimeError: If not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def _init_schema(self) -> None:
        """
        Initialize the database schema.

        Creates tables if they don't exist, runs migrations if needed.
        """
        try:
            async with self.conn.execute(
                "SELECT version FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
                current_version = row[0] if row else 0
        except aiosqlite.OperationalError:
            # Table doesn't exist, this is a fresh database
            current_version = 0

        if current_version < SCHEMA_VERSION:
            await self._create_schema()

    async def _create_schema(self) -> None:
        """Create the database schema from scratch."""
        schema = """
        -- Schema version tracking
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        );

        -- Stored messages. AUTOINCREMENT guarantees ids are never reused,
        -- which is what makes them valid IMAP UIDs.
        CREATE TABLE IF NOT EXISTS mails (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            subject TEXT,
            sender TEXT,
            recipient TEXT,
            date_sent TEXT,
            raw_message TEXT NOT NULL DEFAULT '',
            flags INTEGER NOT NULL DEFAULT 0,
            folder TEXT NOT NULL DEFAULT 'INBOX'
        );

        -- Folders exposed by LIST
        CREATE TABLE IF NOT EXISTS folders (
            name TEXT PRIMARY KEY,
            delimiter TEXT NOT NULL DEFAULT '/',
            attributes TEXT NOT NULL DEFAULT ''
        );

        CREATE INDEX IF NOT EXISTS idx_mails_folder_id ON mails(folder, id);
        """

        await self.conn.executescript(schema)

        await self.conn.executemany(
            "INSERT OR IGNORE INTO folders (name, delimiter, attributes) VALUES (?, ?, ?)",
            [(f.name, f.delimiter, " ".join(f.attributes)) for f in DEFAULT_FOLDERS],
        )

        await self.conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,)
        )
        await self.conn.commit()
