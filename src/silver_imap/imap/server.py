# =============================================================================
# IMAP Server
# =============================================================================
# Accepts TCP connections and runs one read loop per connection:
#
#   read line -> tokenize -> dispatch (state check + handler) -> write
#
# Each connection gets its own asyncio task (the start_server callback) and
# its own Session. Sessions share nothing but the repository.
#
# A connection ends on LOGOUT, end of input, an idle timeout or any
# transport error. Transport failures close the connection without sending
# anything further.
# =============================================================================

import asyncio
import logging
from contextlib import suppress

from silver_imap.config import Config
from silver_imap.imap.handlers import CAPABILITIES, CommandHandlers
from silver_imap.imap.response import ProtocolError, ResponseWriter, Status
from silver_imap.imap.session import Session
from silver_imap.imap.tokenizer import tokenize
from silver_imap.storage.repository import Repository


logger = logging.getLogger(__name__)

# Longest command line accepted before the connection is dropped
MAX_LINE_LENGTH = 64 * 1024


class IMAPServer:
    """
    Asyncio IMAP listener.

    Usage:
        >>> server = IMAPServer(repository, config)
        >>> await server.start()
        >>> await server.serve_forever()

    Attributes:
        repository: Message store shared by every session.
        config: Server configuration (listener, banner, timeouts).
    """

    def __init__(self, repository: Repository, config: Config | None = None) -> None:
        """
        Initialize the server.

        Args:
            repository: Connected message repository.
            config: Configuration. Defaults apply if None.
        """
        self.repository = repository
        self.config = config or Config()
        self.handlers = CommandHandlers(repository, self.config.mailbox)
        self._server: asyncio.Server | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, host: str | None = None, port: int | None = None) -> None:
        """
        Bind the listening socket.

        Args:
            host: Interface to bind. Defaults to config.server.host.
            port: Port to bind. Defaults to config.server.port; 0 picks a
                  free port (see the port property).
        """
        host = self.config.server.host if host is None else host
        port = self.config.server.port if port is None else port

        self._server = await asyncio.start_server(
            self.handle_client, host, port, limit=MAX_LINE_LENGTH
        )
        logger.info(f"IMAP server listening on {host}:{self.port}")

    async def serve_forever(self) -> None:
        """Serve until cancelled. Calls start() first if needed."""
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting connections."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    @property
    def port(self) -> int:
        """The bound port, useful after binding port 0."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server not started. Call start() first.")
        return self._server.sockets[0].getsockname()[1]

    # -------------------------------------------------------------------------
    # Connection Handling
    # -------------------------------------------------------------------------

    async def handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """
        Run the command loop for one connection.

        Args:
            reader: Client input stream.
            writer: Client output stream.
        """
        peername = writer.get_extra_info("peername")
        session = Session(peer=f"{peername[0]}:{peername[1]}" if peername else "unknown")
        logger.info(f"IMAP connection from {session.peer}")

        try:
            await self._send_line(
                writer, f"* OK [CAPABILITY {CAPABILITIES}] {self.config.server.banner}"
            )

            while not session.logged_out:
                line = await self._read_line(reader, session)
                if line is None:
                    break

                out = ResponseWriter()
                await self._process_line(session, line, out)
                if out:
                    for text in out.log_lines:
                        logger.debug(f"S: {text}")
                    writer.write(out.take())
                    await writer.drain()

        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"{session.peer}: transport error: {e}")
        except Exception:
            logger.exception(f"{session.peer}: unexpected error, closing connection")
        finally:
            writer.close()
            with suppress(ConnectionError):
                await writer.wait_closed()
            logger.info(f"IMAP connection closed: {session.peer}")

    async def _read_line(
        self,
        reader: asyncio.StreamReader,
        session: Session,
    ) -> bytes | None:
        """
        Read one raw command line.

        Returns:
            The line, or None when the connection should end (end of input,
            idle timeout, or an over-long line).
        """
        try:
            line = await asyncio.wait_for(
                reader.readline(), timeout=self.config.server.idle_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.info(f"{session.peer}: idle timeout")
            return None
        except (asyncio.LimitOverrunError, ValueError):
            logger.warning(f"{session.peer}: command line too long")
            return None

        return line or None

    async def _process_line(
        self,
        session: Session,
        raw: bytes,
        out: ResponseWriter,
    ) -> None:
        """Decode, tokenize and dispatch one line."""
        try:
            line = raw.decode("utf-8").strip()
        except UnicodeDecodeError:
            out.untagged("BAD Invalid UTF-8 encoding")
            return

        if not line:
            return

        logger.debug(f"C: {line}")

        # Reply to the IDLE stub, which has already completed
        if line.upper() == "DONE":
            return

        try:
            command = tokenize(line)
        except ProtocolError as e:
            out.untagged(f"{Status.BAD.value} {e}")
            return

        await self.handlers.dispatch(session, command, out)

    async def _send_line(self, writer: asyncio.StreamWriter, text: str) -> None:
        logger.debug(f"S: {text}")
        writer.write(text.encode("utf-8") + b"\r\n")
        await writer.drain()
