# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the Silver IMAP test suite: a temporary SQLite store,
# a repository seeded with known messages, a running server on a free port
# and a line-level client that understands literals.
# =============================================================================

import asyncio
import re
from datetime import datetime

import pytest

from silver_imap.config import Config
from silver_imap.core import Message, MessageFlags
from silver_imap.imap.server import IMAPServer
from silver_imap.imap.session import Session
from silver_imap.storage import Database, Repository


# Raw message texts stored in INBOX, in insertion (= id) order
INBOX_MESSAGES = [
    (
        "From: alice@example.com\r\n"
        "To: user@example.com\r\n"
        "Subject: First\r\n"
        "Date: Mon, 15 Jan 2024 10:30:00 +0000\r\n"
        "Message-ID: <first@example.com>\r\n"
        "\r\n"
        "Hello from Alice.\r\n"
    ),
    # Bare LF line endings, normalized by the FETCH renderer
    (
        "From: bob@example.com\n"
        "To: user@example.com\n"
        "Subject: Second\n"
        " continued\n"
        "Date: Tue, 16 Jan 2024 11:00:00 +0000\n"
        "\n"
        "Line one.\n"
        "Line two.\n"
    ),
    (
        "From: carol@example.com\r\n"
        "To: user@example.com\r\n"
        "Subject: Third\r\n"
        "\r\n"
        "Hi.\r\n"
    ),
]

_LITERAL_RE = re.compile(rb"\{(\d+)\}\r\n$")


@pytest.fixture
async def database(tmp_path):
    """A connected, empty database in a temporary directory."""
    db = Database(tmp_path / "mails.db")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
async def repository(database):
    """A repository over the empty database."""
    return Repository(database)


@pytest.fixture
async def seeded_repository(repository):
    """
    A repository whose INBOX holds the three INBOX_MESSAGES (ids 1, 2, 3,
    none of them \\Seen) and one \\Seen message in Sent (id 4).
    Drafts and Trash are empty.
    """
    for index, raw in enumerate(INBOX_MESSAGES, start=1):
        await repository.add_message(Message(
            folder="INBOX",
            subject=f"Message {index}",
            sender="sender@example.com",
            recipient="user@example.com",
            date_sent=datetime(2024, 1, 14 + index, 10, 0, 0),
            raw_message=raw,
        ))
    await repository.add_message(Message(
        folder="Sent",
        subject="Sent one",
        raw_message="Subject: Sent one\r\n\r\nBody\r\n",
        flags=MessageFlags.SEEN,
    ))
    return repository


@pytest.fixture
def session():
    """A fresh, unauthenticated session."""
    return Session(peer="127.0.0.1:50000")


@pytest.fixture
def config():
    """Default configuration bound to a free local port."""
    config = Config()
    config.server.host = "127.0.0.1"
    config.server.port = 0
    return config


@pytest.fixture
async def server(seeded_repository, config):
    """A running server bound to a free local port."""
    imap_server = IMAPServer(seeded_repository, config)
    await imap_server.start()
    yield imap_server
    await imap_server.stop()


class LineClient:
    """
    Minimal raw IMAP client for protocol tests.

    command() returns every chunk the server sent for one command: lines
    (with their CRLF) and, after a line ending in {n}, the n literal bytes
    as a separate chunk.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.reader = reader
        self.writer = writer

    async def send(self, line: str | bytes) -> None:
        data = line.encode("utf-8") if isinstance(line, str) else line
        self.writer.write(data + b"\r\n")
        await self.writer.drain()

    async def read_line(self) -> bytes:
        return await asyncio.wait_for(self.reader.readline(), timeout=5)

    async def read_response(self, tag: str) -> list[bytes]:
        """Read until the line starting with tag (or EOF)."""
        chunks: list[bytes] = []
        prefix = tag.encode("utf-8") + b" "
        while True:
            line = await self.read_line()
            if not line:
                return chunks
            chunks.append(line)
            match = _LITERAL_RE.search(line)
            if match:
                chunks.append(await self.reader.readexactly(int(match.group(1))))
                continue
            if line.startswith(prefix):
                return chunks

    async def command(self, line: str) -> list[bytes]:
        """Send a command and return its complete response."""
        await self.send(line)
        return await self.read_response(line.split()[0])

    async def close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError:
            pass


@pytest.fixture
async def client(server):
    """A connected LineClient whose greeting has already been read."""
    reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
    line_client = LineClient(reader, writer)
    line_client.greeting = await line_client.read_line()
    yield line_client
    await line_client.close()


@pytest.fixture
async def logged_in(client):
    """A client that has already logged in."""
    await client.command("a0 LOGIN user pass")
    return client
