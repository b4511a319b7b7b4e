# =============================================================================
# Server Tests
# =============================================================================
# End-to-end tests over real sockets: the raw LineClient from conftest for
# exact wire bytes, and aioimaplib as an off-the-shelf client.
# =============================================================================

import asyncio
import re

import pytest
from aioimaplib import aioimaplib

from silver_imap.imap.fetch import normalize_crlf
from silver_imap.imap.server import IMAPServer

from conftest import INBOX_MESSAGES, LineClient


def _check_literals(chunks: list[bytes]) -> int:
    """Assert every {n} line is followed by exactly n bytes and ')'. Returns the count."""
    checked = 0
    for index, chunk in enumerate(chunks):
        match = re.search(rb"\{(\d+)\}\r\n$", chunk)
        if match:
            assert len(chunks[index + 1]) == int(match.group(1))
            assert chunks[index + 2] == b")\r\n"
            checked += 1
    return checked


# =============================================================================
# Connection
# =============================================================================

async def test_greeting(client):
    assert client.greeting == b"* OK [CAPABILITY IMAP4rev1 UIDPLUS IDLE] SQLite IMAP server ready\r\n"


async def test_greeting_uses_configured_banner(seeded_repository, config):
    config.server.banner = "Mail store at your service"
    server = IMAPServer(seeded_repository, config)
    await server.start()
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        client = LineClient(reader, writer)
        assert await client.read_line() == (
            b"* OK [CAPABILITY IMAP4rev1 UIDPLUS IDLE] Mail store at your service\r\n"
        )
        assert await client.command("a1 LOGOUT") == [
            b"* BYE IMAP server logging out\r\n",
            b"a1 OK LOGOUT completed\r\n",
        ]
        await client.close()
    finally:
        await server.stop()


async def test_short_line_gets_untagged_bad(client):
    assert await client.command("lonely") == [b"* BAD Invalid command format\r\n"]


async def test_invalid_utf8(client):
    await client.send(b"a1 \xff\xfe NOOP")
    assert await client.read_line() == b"* BAD Invalid UTF-8 encoding\r\n"
    # Connection stays usable
    assert await client.command("a2 NOOP") == [b"a2 OK NOOP completed\r\n"]


async def test_blank_lines_and_done_are_ignored(client):
    await client.send("")
    await client.send("DONE")
    assert await client.command("a1 NOOP") == [b"a1 OK NOOP completed\r\n"]


async def test_lf_terminated_commands(client):
    client.writer.write(b"a1 NOOP\n")
    await client.writer.drain()
    assert await client.read_response("a1") == [b"a1 OK NOOP completed\r\n"]


async def test_logout_closes_connection(client):
    assert await client.command("a1 LOGOUT") == [
        b"* BYE IMAP server logging out\r\n",
        b"a1 OK LOGOUT completed\r\n",
    ]
    assert await client.read_line() == b""


async def test_idle_timeout_drops_connection(seeded_repository, config):
    config.server.idle_timeout_minutes = 0.001
    server = IMAPServer(seeded_repository, config)
    await server.start()
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        await reader.readline()
        assert await asyncio.wait_for(reader.readline(), timeout=5) == b""
        writer.close()
    finally:
        await server.stop()


async def test_sessions_are_independent(server, logged_in):
    reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
    other = LineClient(reader, writer)
    await other.read_line()
    try:
        assert await other.command("b1 SELECT INBOX") == [
            b"b1 NO Please authenticate first\r\n"
        ]
        selected = await logged_in.command("a1 SELECT INBOX")
        assert selected[-1] == b"a1 OK [READ-WRITE] SELECT completed\r\n"
    finally:
        await other.close()


# =============================================================================
# Protocol Scenarios
# =============================================================================

async def test_select_before_login(client):
    assert await client.command("a1 SELECT INBOX") == [b"a1 NO Please authenticate first\r\n"]


async def test_fetch_before_select(logged_in):
    assert await logged_in.command("a1 FETCH 1:* (FLAGS)") == [b"a1 NO No folder selected\r\n"]


async def test_uid_fetch_all_flags(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    chunks = await logged_in.command("a2 UID FETCH 1:* (UID FLAGS)")

    assert chunks[-1] == b"a2 OK UID FETCH completed\r\n"
    uids = [int(re.search(rb"UID (\d+)", line).group(1)) for line in chunks[:-1]]
    assert uids == [1, 2, 3]


async def test_uid_fetch_whole_messages(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    chunks = await logged_in.command("a2 UID FETCH 1:* (UID RFC822.SIZE BODY.PEEK[])")

    assert _check_literals(chunks) == 3
    bodies = [chunks[i + 1] for i, c in enumerate(chunks) if c.endswith(b"}\r\n")]
    assert bodies == [normalize_crlf(raw).encode("utf-8") for raw in INBOX_MESSAGES]

    size = len(normalize_crlf(INBOX_MESSAGES[1]).encode("utf-8"))
    assert chunks[3] == b"* 2 FETCH (UID 2 RFC822.SIZE %d BODY[] {%d}\r\n" % (size, size)
    assert chunks[-1] == b"a2 OK UID FETCH completed\r\n"


async def test_uid_fetch_header_fields(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    chunks = await logged_in.command(
        "a2 UID FETCH 2 (UID FLAGS BODY.PEEK[HEADER.FIELDS (SUBJECT FROM)])"
    )

    assert _check_literals(chunks) == 1
    assert chunks[0].startswith(b"* 2 FETCH (UID 2 FLAGS () BODY[HEADER] {")
    assert chunks[1] == (
        b"Subject: Second\r\n"
        b" continued\r\n"
        b"From: bob@example.com\r\n"
        b"\r\n"
    )


async def test_fetch_by_sequence_number_body(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    chunks = await logged_in.command("a2 FETCH 3 (BODY[])")

    assert chunks[0] == b"* 3 FETCH (BODY[] {%d}\r\n" % len(INBOX_MESSAGES[2])
    assert chunks[1] == INBOX_MESSAGES[2].encode("utf-8")
    assert chunks[2:] == [b")\r\n", b"a2 OK FETCH completed\r\n"]


async def test_store_then_select(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    assert await logged_in.command("a2 UID STORE 1:2 +FLAGS (\\Seen)") == [
        b"a2 OK STORE completed\r\n"
    ]
    selected = await logged_in.command("a3 SELECT INBOX")
    assert selected[:2] == [b"* 3 EXISTS\r\n", b"* 1 RECENT\r\n"]

    chunks = await logged_in.command("a4 UID FETCH 1:* (FLAGS)")
    assert chunks[:3] == [
        b"* 1 FETCH (UID 1 FLAGS (\\Seen))\r\n",
        b"* 2 FETCH (UID 2 FLAGS (\\Seen))\r\n",
        b"* 3 FETCH (UID 3 FLAGS ())\r\n",
    ]


async def test_oversized_numbers_get_bad(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    huge = "99999999999999999999"

    assert await logged_in.command(f"a2 UID FETCH {huge} (FLAGS)") == [
        b"a2 BAD Invalid UID\r\n"
    ]
    assert await logged_in.command(f"a3 FETCH {huge} (FLAGS)") == [
        b"a3 BAD Invalid sequence number\r\n"
    ]
    assert await logged_in.command(f"a4 UID STORE {huge} +FLAGS (\\Seen)") == [
        b"a4 BAD Invalid UID\r\n"
    ]
    assert await logged_in.command(f"a5 UID FETCH 1:{huge} (FLAGS)") == [
        b"a5 BAD Invalid UID range\r\n"
    ]
    # Connection stays usable
    assert await logged_in.command("a6 NOOP") == [b"a6 OK NOOP completed\r\n"]


async def test_idle_then_done(logged_in):
    await logged_in.command("a1 SELECT INBOX")
    assert await logged_in.command("a2 IDLE") == [b"+ idling\r\n", b"a2 OK IDLE completed\r\n"]
    await logged_in.send("DONE")
    assert await logged_in.command("a3 NOOP") == [b"a3 OK NOOP completed\r\n"]


# =============================================================================
# Off-the-shelf Client
# =============================================================================

@pytest.fixture
async def imap_client(server):
    imap = aioimaplib.IMAP4(host="127.0.0.1", port=server.port, timeout=5)
    await imap.wait_hello_from_server()
    yield imap
    if imap.protocol.state != "LOGOUT":
        await imap.logout()


async def test_aioimaplib_session(imap_client):
    response = await imap_client.login("user", "password")
    assert response.result == "OK"

    response = await imap_client.select("INBOX")
    assert response.result == "OK"
    assert b"3 EXISTS" in response.lines

    response = await imap_client.uid("fetch", "1:*", "(UID FLAGS)")
    assert response.result == "OK"
    fetched = [line for line in response.lines if re.match(rb"\d+ FETCH \(UID \d+", bytes(line))]
    assert len(fetched) == 3

    response = await imap_client.logout()
    assert response.result == "OK"
