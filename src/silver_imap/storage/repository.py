# =============================================================================
# Repository - Data Access Layer
# =============================================================================
# The message store as the protocol engine sees it.
#
# Every operation is scoped to one folder and every enumeration is ordered
# by ascending id. That ordering is the only basis for sequence numbers,
# which are never stored: callers derive them from positions in these
# results (or from count_up_to) on every request.
#
# Each method is a single statement (plus a commit for writes), so each call
# is atomic on its own. There are no transactions spanning several calls.
# All storage failures are raised as RepositoryError.
# =============================================================================

import logging
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import TYPE_CHECKING

import aiosqlite

from silver_imap.core import Address, AddressKind, Folder, Message, MessageFlags

if TYPE_CHECKING:
    from silver_imap.storage.database import Database


logger = logging.getLogger(__name__)

# Columns selected for every message query, in _row_to_message order
_MESSAGE_COLUMNS = "id, folder, subject, sender, recipient, date_sent, raw_message, flags"


class Repository:
    """
    Folder-scoped access to stored messages.

    Usage:
        >>> repo = Repository(database)
        >>> total = await repo.count("INBOX")
        >>> first = await repo.get_by_offset("INBOX", 0)
        >>> await repo.add_flag("INBOX", Address.all(), MessageFlags.SEEN)

    Attributes:
        db: Database instance for executing queries.
    """

    def __init__(self, db: "Database") -> None:
        """
        Initialize the repository.

        Args:
            db: Connected Database instance.
        """
        self.db = db

    # =========================================================================
    # Counting
    # =========================================================================

    async def count(self, folder: str) -> int:
        """Number of messages in a folder."""
        return await self._scalar(
            "SELECT COUNT(*) FROM mails WHERE folder = ?", (folder,)
        )

    async def count_unseen(self, folder: str) -> int:
        """Number of messages in a folder that lack \\Seen."""
        return await self._scalar(
            "SELECT COUNT(*) FROM mails WHERE folder = ? AND (flags & ?) = 0",
            (folder, int(MessageFlags.SEEN)),
        )

    async def count_up_to(self, folder: str, message_id: int) -> int:
        """
        Number of messages in a folder with an id <= message_id.

        For a message that exists this is its sequence number.
        """
        return await self._scalar(
            "SELECT COUNT(*) FROM mails WHERE folder = ? AND id <= ?",
            (folder, message_id),
        )

    # =========================================================================
    # Message Lookup
    # =========================================================================

    async def list_ascending(self, folder: str) -> list[Message]:
        """
        Every message in a folder, ascending by id.

        Args:
            folder: Folder name.

        Returns:
            List of Message objects. Position i holds sequence number i + 1.
        """
        return await self._fetch_messages(
            f"SELECT {_MESSAGE_COLUMNS} FROM mails WHERE folder = ? ORDER BY id ASC",
            (folder,),
        )

    async def get_by_offset(self, folder: str, offset: int) -> Message | None:
        """
        The message at a zero-based position in the ascending enumeration.

        Args:
            folder: Folder name.
            offset: Zero-based position (sequence number - 1).

        Returns:
            Message if the folder holds more than offset messages, None otherwise.
        """
        if offset < 0:
            return None
        messages = await self._fetch_messages(
            f"""SELECT {_MESSAGE_COLUMNS} FROM mails WHERE folder = ?
                ORDER BY id ASC LIMIT 1 OFFSET ?""",
            (folder, offset),
        )
        return messages[0] if messages else None

    async def get_by_id(self, folder: str, message_id: int) -> Message | None:
        """
        A message by id, only if it lives in the given folder.

        Args:
            folder: Folder name.
            message_id: Message id (UID).

        Returns:
            Message if found, None otherwise.
        """
        messages = await self._fetch_messages(
            f"SELECT {_MESSAGE_COLUMNS} FROM mails WHERE folder = ? AND id = ?",
            (folder, message_id),
        )
        return messages[0] if messages else None

    async def get_by_id_range(
        self,
        folder: str,
        lo: int,
        hi: int | None,
    ) -> list[Message]:
        """
        Messages with lo <= id <= hi, ascending by id.

        Args:
            folder: Folder name.
            lo: Lowest id, inclusive.
            hi: Highest id, inclusive. None means no upper bound.

        Returns:
            List of Message objects.
        """
        if hi is None:
            return await self._fetch_messages(
                f"""SELECT {_MESSAGE_COLUMNS} FROM mails
                    WHERE folder = ? AND id >= ? ORDER BY id ASC""",
                (folder, lo),
            )
        return await self._fetch_messages(
            f"""SELECT {_MESSAGE_COLUMNS} FROM mails
                WHERE folder = ? AND id >= ? AND id <= ? ORDER BY id ASC""",
            (folder, lo, hi),
        )

    # =========================================================================
    # Flag Mutation
    # =========================================================================

    async def add_flag(
        self,
        folder: str,
        target: Address,
        flag: MessageFlags,
    ) -> int:
        """
        Add a flag to every message of a folder matched by target.

        Idempotent: messages already carrying the flag are excluded by the
        WHERE clause and left untouched.

        Args:
            folder: Folder name.
            target: Which ids to touch. Numbers are ids, not sequence numbers.
            flag: Flag to add.

        Returns:
            Number of messages that changed.
        """
        sql = "UPDATE mails SET flags = flags | ? WHERE folder = ? AND (flags & ?) = 0"
        params: list = [int(flag), folder, int(flag)]

        if target.kind == AddressKind.SINGLE:
            sql += " AND id = ?"
            params.append(target.lo)
        elif target.kind == AddressKind.RANGE:
            sql += " AND id >= ?"
            params.append(target.lo)
            if target.hi is not None:
                sql += " AND id <= ?"
                params.append(target.hi)

        try:
            cursor = await self.db.conn.execute(sql, params)
            await self.db.conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Failed to add {flag.to_imap()} to {folder} {target}: {e}")
            raise RepositoryError(str(e)) from e

        logger.debug(f"Added {flag.to_imap()} to {cursor.rowcount} messages in {folder}")
        return cursor.rowcount

    async def add_flag_to_ids(
        self,
        folder: str,
        message_ids: list[int],
        flag: MessageFlags,
    ) -> int:
        """
        Add a flag to an explicit list of ids. Idempotent like add_flag.

        Returns:
            Number of messages that changed.
        """
        changed = 0
        for message_id in message_ids:
            changed += await self.add_flag(folder, Address.single(message_id), flag)
        return changed

    # =========================================================================
    # Insertion
    # =========================================================================

    async def add_message(self, message: Message) -> Message:
        """
        Insert a message. The store assigns its id.

        Args:
            message: Message to insert (id must be None).

        Returns:
            The same message with id populated.
        """
        try:
            cursor = await self.db.conn.execute(
                """INSERT INTO mails
                   (subject, sender, recipient, date_sent, raw_message, flags, folder)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (message.subject, message.sender, message.recipient,
                 message.date_sent.isoformat() if message.date_sent else None,
                 message.raw_message, int(message.flags), message.folder)
            )
            await self.db.conn.commit()
        except aiosqlite.Error as e:
            logger.error(f"Failed to insert message into {message.folder}: {e}")
            raise RepositoryError(str(e)) from e

        message.id = cursor.lastrowid
        return message

    async def seed_sample_messages(self) -> int:
        """
        Insert two welcome messages into INBOX if the store is empty.

        Returns:
            Number of messages inserted.
        """
        if await self._scalar("SELECT COUNT(*) FROM mails", ()):
            return 0

        now = datetime.now(timezone.utc)
        samples = [
            (
                "Welcome to SQLite IMAP",
                "admin@example.com",
                now,
                "Welcome to your SQLite IMAP server!\r\n\r\nThis is a test message.\r\n",
            ),
            (
                "Test Message 2",
                "test@example.com",
                now - timedelta(days=1),
                "This is another test message with some content.\r\n\r\n"
                "Best regards,\r\nTest User\r\n",
            ),
        ]

        for subject, sender, sent, body in samples:
            await self.add_message(Message(
                folder="INBOX",
                subject=subject,
                sender=sender,
                recipient="user@example.com",
                date_sent=sent,
                raw_message=(
                    f"From: {sender}\r\n"
                    f"To: user@example.com\r\n"
                    f"Subject: {subject}\r\n"
                    f"Date: {format_datetime(sent)}\r\n"
                    f"\r\n"
                    f"{body}"
                ),
            ))

        logger.info(f"Seeded {len(samples)} sample messages into INBOX")
        return len(samples)

    # =========================================================================
    # Folder Operations
    # =========================================================================

    async def list_folders(self) -> list[Folder]:
        """
        All folders, INBOX first, the rest by name.

        Returns:
            List of Folder objects.
        """
        try:
            async with self.db.conn.execute(
                """SELECT name, delimiter, attributes FROM folders
                   ORDER BY CASE WHEN UPPER(name) = 'INBOX' THEN 0 ELSE 1 END, name"""
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Failed to list folders: {e}")
            raise RepositoryError(str(e)) from e

        return [self._row_to_folder(row) for row in rows]

    async def get_folder(self, name: str) -> Folder | None:
        """
        Look up a folder by client-supplied name.

        Args:
            name: Folder name. INBOX matches case-insensitively.

        Returns:
            Folder if found, None otherwise.
        """
        for folder in await self.list_folders():
            if folder.matches(name):
                return folder
        return None

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _scalar(self, sql: str, params: tuple) -> int:
        """Run a single-value query."""
        try:
            async with self.db.conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error(f"Query failed: {e}")
            raise RepositoryError(str(e)) from e
        return row[0] if row else 0

    async def _fetch_messages(self, sql: str, params: tuple) -> list[Message]:
        """Run a message query and convert the rows."""
        try:
            async with self.db.conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Query failed: {e}")
            raise RepositoryError(str(e)) from e
        return [self._row_to_message(row) for row in rows]

    def _row_to_message(self, row) -> Message:
        """Convert a database row to a Message object."""
        date_sent = None
        if row[5]:
            try:
                date_sent = datetime.fromisoformat(row[5])
            except ValueError:
                # Rows written by other tools may carry RFC 2822 dates
                date_sent = None

        return Message(
            id=row[0],
            folder=row[1],
            subject=row[2] or "",
            sender=row[3] or "",
            recipient=row[4] or "",
            date_sent=date_sent,
            raw_message=row[6] or "",
            flags=MessageFlags(row[7] or 0),
        )

    def _row_to_folder(self, row) -> Folder:
        """Convert a database row to a Folder object."""
        return Folder(
            name=row[0],
            delimiter=row[1] or "/",
            attributes=row[2].split() if row[2] else [],
        )


# =============================================================================
# Exceptions
# =============================================================================

class RepositoryError(Exception):
    """Raised when the message store fails a query or update."""
    pass
