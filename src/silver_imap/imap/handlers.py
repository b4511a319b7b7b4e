# =============================================================================
# Command Handlers
# =============================================================================
# One handler per IMAP verb, plus the dispatch table that routes a tokenized
# Command to its handler after checking the session state.
#
# Supported commands:
#   any state:      CAPABILITY, NOOP, LOGOUT, LOGIN
#   authenticated:  LIST, SELECT, EXAMINE, STATUS
#   selected:       FETCH, SEARCH, STORE, IDLE,
#                   UID FETCH, UID SEARCH, UID STORE
#
# Error mapping:
#   ProtocolError       -> <tag> BAD <text>
#   PreconditionError   -> <tag> NO <text>
#   RepositoryError     -> <tag> NO Database error
# =============================================================================

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

from silver_imap.config import MailboxConfig
from silver_imap.core import Folder, MessageFlags
from silver_imap.imap.fetch import FetchItems, render_fetch
from silver_imap.imap.response import (
    IMAPError,
    PreconditionError,
    ProtocolError,
    ResponseWriter,
    Status,
)
from silver_imap.imap.sequence import AddressMode, parse_address, resolve
from silver_imap.imap.session import Session, SessionState
from silver_imap.imap.tokenizer import Command, join_items, unquote
from silver_imap.storage.repository import Repository, RepositoryError


logger = logging.getLogger(__name__)

# Advertised in the greeting and in CAPABILITY responses
CAPABILITIES = "IMAP4rev1 UIDPLUS IDLE"

# Flags clients may see and set
SYSTEM_FLAGS = "\\Answered \\Flagged \\Deleted \\Seen \\Draft"

# STATUS items, in the order they are reported when none are requested
STATUS_ITEMS = ("MESSAGES", "RECENT", "UIDNEXT", "UIDVALIDITY", "UNSEEN")

# Signature shared by all handlers: (session, tag, args, out)
Handler = Callable[[Session, str, list[str], ResponseWriter], Awaitable[None]]


@dataclass(frozen=True)
class CommandSpec:
    """
    Dispatch table entry.

    Attributes:
        handler: Coroutine that runs the command.
        requires: Lowest session state in which the command is legal.
    """
    handler: Handler
    requires: SessionState = SessionState.NOT_AUTHENTICATED


class CommandHandlers:
    """
    Runs commands against the message repository.

    One instance is shared by all connections. It holds no per-connection
    state: everything a command may change lives in the Session passed in.

    Usage:
        >>> handlers = CommandHandlers(repository)
        >>> out = ResponseWriter()
        >>> await handlers.dispatch(session, tokenize("a1 NOOP"), out)
        >>> out.getvalue()
        b'a1 OK NOOP completed\\r\\n'
    """

    def __init__(
        self,
        repository: Repository,
        mailbox: MailboxConfig | None = None,
    ) -> None:
        """
        Initialize the handlers.

        Args:
            repository: Message store shared by all sessions.
            mailbox: Mailbox constants (UIDVALIDITY). Defaults apply if None.
        """
        self.repository = repository
        self.mailbox = mailbox or MailboxConfig()

        self._commands: dict[str, CommandSpec] = {
            "CAPABILITY": CommandSpec(self.handle_capability),
            "NOOP": CommandSpec(self.handle_noop),
            "LOGOUT": CommandSpec(self.handle_logout),
            "LOGIN": CommandSpec(self.handle_login),
            "LIST": CommandSpec(self.handle_list, SessionState.AUTHENTICATED),
            "SELECT": CommandSpec(self.handle_select, SessionState.AUTHENTICATED),
            "EXAMINE": CommandSpec(self.handle_examine, SessionState.AUTHENTICATED),
            "STATUS": CommandSpec(self.handle_status, SessionState.AUTHENTICATED),
            "FETCH": CommandSpec(self.handle_fetch, SessionState.SELECTED),
            "SEARCH": CommandSpec(self.handle_search, SessionState.SELECTED),
            "STORE": CommandSpec(self.handle_store, SessionState.SELECTED),
            "IDLE": CommandSpec(self.handle_idle, SessionState.SELECTED),
        }
        self._uid_commands: dict[str, CommandSpec] = {
            "FETCH": CommandSpec(self.handle_uid_fetch, SessionState.SELECTED),
            "SEARCH": CommandSpec(self.handle_uid_search, SessionState.SELECTED),
            "STORE": CommandSpec(self.handle_uid_store, SessionState.SELECTED),
        }

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(
        self,
        session: Session,
        command: Command,
        out: ResponseWriter,
    ) -> None:
        """
        Route a command to its handler and write the full response.

        Every outcome other than a transport failure ends in exactly one
        tagged line, so the connection always stays usable.

        Args:
            session: The connection's session.
            command: Tokenized command.
            out: Response being built.
        """
        tag = command.tag
        args = command.args

        if command.verb == "UID":
            if command.subcommand is None:
                out.tagged(tag, Status.BAD, "UID requires a subcommand")
                return
            spec = self._uid_commands.get(command.subcommand)
            if spec is None:
                out.tagged(tag, Status.BAD, f"Unknown UID subcommand: {command.subcommand}")
                return
            args = args[1:]
        else:
            spec = self._commands.get(command.verb)
            if spec is None:
                out.tagged(tag, Status.BAD, f"Unknown command: {command.verb}")
                return

        try:
            session.require(spec.requires)
            await spec.handler(session, tag, args, out)
        except IMAPError as e:
            out.tagged(tag, e.status, str(e), code=e.code)
        except RepositoryError as e:
            logger.error(f"{session.peer}: {command.verb} failed: {e}")
            out.tagged(tag, Status.NO, "Database error")

    # =========================================================================
    # Any State
    # =========================================================================

    async def handle_capability(self, session, tag, args, out) -> None:
        out.untagged(f"CAPABILITY {CAPABILITIES}")
        out.tagged(tag, Status.OK, "CAPABILITY completed")

    async def handle_noop(self, session, tag, args, out) -> None:
        out.tagged(tag, Status.OK, "NOOP completed")

    async def handle_logout(self, session, tag, args, out) -> None:
        out.untagged("BYE IMAP server logging out")
        out.tagged(tag, Status.OK, "LOGOUT completed")
        session.logout()

    async def handle_login(self, session, tag, args, out) -> None:
        """
        Accept any non-empty username/password pair. Credentials are not
        checked against anything.
        """
        if len(args) < 2:
            raise ProtocolError("LOGIN requires username and password")

        username, password = unquote(args[0]), unquote(args[1])
        if not username or not password:
            raise PreconditionError("Invalid credentials", code="AUTHENTICATIONFAILED")

        session.login(username)
        logger.info(f"{session.peer}: logged in as {username}")
        out.tagged(tag, Status.OK, "LOGIN completed")

    # =========================================================================
    # Authenticated State
    # =========================================================================

    async def handle_list(self, session, tag, args, out) -> None:
        """
        LIST <reference> <pattern>

        '*' matches anything, '%' anything but the hierarchy delimiter.
        Missing arguments list every folder.
        """
        reference = unquote(args[0]) if len(args) > 0 else ""
        pattern = unquote(args[1]) if len(args) > 1 else "*"

        if not pattern:
            # Empty pattern asks for the hierarchy delimiter only
            out.untagged('LIST (\\Noselect) "/" ""')
            out.tagged(tag, Status.OK, "LIST completed")
            return

        for folder in await self.repository.list_folders():
            if _list_matches(reference + pattern, folder):
                out.untagged(
                    f'LIST ({folder.list_attributes}) "{folder.delimiter}" "{folder.name}"'
                )
        out.tagged(tag, Status.OK, "LIST completed")

    async def handle_select(self, session, tag, args, out) -> None:
        await self._open_folder(session, tag, args, out, read_only=False)

    async def handle_examine(self, session, tag, args, out) -> None:
        await self._open_folder(session, tag, args, out, read_only=True)

    async def _open_folder(self, session, tag, args, out, read_only: bool) -> None:
        verb = "EXAMINE" if read_only else "SELECT"
        if not args:
            raise ProtocolError(f"{verb} requires folder name")

        folder = await self._require_folder(unquote(args[0]), session)

        total = await self.repository.count(folder.name)
        unseen = await self.repository.count_unseen(folder.name)

        session.select(folder.name, read_only=read_only)

        out.untagged(f"{total} EXISTS")
        out.untagged(f"{unseen} RECENT")
        out.untagged(f"OK [UIDVALIDITY {self.mailbox.uidvalidity}] UID validity status")
        out.untagged(f"OK [UIDNEXT {total + 1}] Predicted next UID")
        out.untagged(f"FLAGS ({SYSTEM_FLAGS})")
        out.untagged(f"OK [PERMANENTFLAGS ({SYSTEM_FLAGS} \\*)] Flags permitted")
        if read_only:
            out.tagged(tag, Status.OK, "EXAMINE completed", code="READ-ONLY")
        else:
            out.tagged(tag, Status.OK, "SELECT completed", code="READ-WRITE")

    async def handle_status(self, session, tag, args, out) -> None:
        """
        STATUS <folder> (<items>)

        Reports the requested counters in request order, or all of them
        when no recognised item was asked for. Does not change selection.
        """
        if len(args) < 2:
            raise ProtocolError("STATUS requires folder and items")

        folder = await self._require_folder(unquote(args[0]))

        requested = [item.upper() for item in join_items(args[1:]).split()]
        items = [item for item in dict.fromkeys(requested) if item in STATUS_ITEMS]
        if not items:
            items = list(STATUS_ITEMS)

        total = await self.repository.count(folder.name)
        unseen = await self.repository.count_unseen(folder.name)
        values = {
            "MESSAGES": total,
            "RECENT": unseen,
            "UIDNEXT": total + 1,
            "UIDVALIDITY": self.mailbox.uidvalidity,
            "UNSEEN": unseen,
        }

        report = " ".join(f"{item} {values[item]}" for item in items)
        out.untagged(f'STATUS "{folder.name}" ({report})')
        out.tagged(tag, Status.OK, "STATUS completed")

    async def _require_folder(self, name: str, session: Session | None = None) -> Folder:
        """
        Look up a folder or fail with NO [NONEXISTENT].

        When a session is given, a failed lookup also drops its current
        selection, as a failed SELECT does.
        """
        folder = await self.repository.get_folder(name)
        if folder is None:
            if session is not None:
                session.deselect()
            raise PreconditionError(f"Folder not found: {name}", code="NONEXISTENT")
        return folder

    # =========================================================================
    # Selected State
    # =========================================================================

    async def handle_fetch(self, session, tag, args, out) -> None:
        """FETCH <seq> <items>, addressed by sequence number."""
        if len(args) < 2:
            raise ProtocolError("FETCH requires sequence and items")

        address = parse_address(args[0], AddressMode.SEQUENCE)
        items = FetchItems.parse(join_items(args[1:]))

        for seq, message in await resolve(
            self.repository, session.selected_folder, address, AddressMode.SEQUENCE
        ):
            render_fetch(out, seq, message, items)

        out.tagged(tag, Status.OK, "FETCH completed")

    async def handle_uid_fetch(self, session, tag, args, out) -> None:
        """UID FETCH <uid-set> <items>. UID is always reported."""
        if len(args) < 2:
            raise ProtocolError("UID FETCH requires sequence and items")

        address = parse_address(args[0], AddressMode.UID)
        items = FetchItems.parse(join_items(args[1:]), uid=True)

        for seq, message in await resolve(
            self.repository, session.selected_folder, address, AddressMode.UID
        ):
            render_fetch(out, seq, message, items)

        out.tagged(tag, Status.OK, "UID FETCH completed")

    async def handle_search(self, session, tag, args, out) -> None:
        # Criteria are ignored: every message matches
        total = await self.repository.count(session.selected_folder)
        out.untagged(" ".join(["SEARCH", *(str(n) for n in range(1, total + 1))]))
        out.tagged(tag, Status.OK, "SEARCH completed")

    async def handle_uid_search(self, session, tag, args, out) -> None:
        messages = await self.repository.list_ascending(session.selected_folder)
        out.untagged(" ".join(["SEARCH", *(str(m.id) for m in messages)]))
        out.tagged(tag, Status.OK, "UID SEARCH completed")

    async def handle_store(self, session, tag, args, out) -> None:
        """
        STORE <seq> +FLAGS (\\Seen), addressed by sequence number.

        The sequence numbers are resolved to ids first, then flagged.
        """
        if len(args) < 3:
            raise ProtocolError("STORE requires sequence, operation, and flags")

        address = parse_address(args[0], AddressMode.SEQUENCE)
        flag = _parse_store_flag(args[1], args[2:])
        session.require_writable()

        resolved = await resolve(
            self.repository, session.selected_folder, address, AddressMode.SEQUENCE
        )
        await self.repository.add_flag_to_ids(
            session.selected_folder, [message.id for _, message in resolved], flag
        )
        out.tagged(tag, Status.OK, "STORE completed")

    async def handle_uid_store(self, session, tag, args, out) -> None:
        """
        UID STORE <uid-set> +FLAGS (\\Seen)

        No untagged FETCH echo is sent for the changed messages.
        """
        if len(args) < 3:
            raise ProtocolError("UID STORE requires sequence, operation, and flags")

        address = parse_address(args[0], AddressMode.UID)
        flag = _parse_store_flag(args[1], args[2:])
        session.require_writable()

        await self.repository.add_flag(session.selected_folder, address, flag)
        out.tagged(tag, Status.OK, "STORE completed")

    async def handle_idle(self, session, tag, args, out) -> None:
        """
        Acknowledge IDLE and complete it at once.

        This does not wait for DONE or for new mail. The client's DONE line
        arrives afterwards and is ignored by the connection loop.
        """
        # TODO: wait on either the client's DONE or a new-message notification,
        # bounded by the idle timeout.
        out.continuation("idling")
        out.tagged(tag, Status.OK, "IDLE completed")


# =============================================================================
# Helpers
# =============================================================================

def _parse_store_flag(operation: str, flag_tokens: list[str]) -> MessageFlags:
    """
    Validate a STORE operation. Only adding \\Seen is supported.

    Raises:
        ProtocolError: For any other operation or flag.
    """
    if operation.upper() not in ("+FLAGS", "+FLAGS.SILENT"):
        raise ProtocolError("Only +FLAGS (\\Seen) supported")
    if "\\SEEN" not in join_items(flag_tokens).upper():
        raise ProtocolError("Only +FLAGS (\\Seen) supported")
    return MessageFlags.SEEN


def _list_matches(pattern: str, folder: Folder) -> bool:
    """Check a folder name against a LIST pattern. INBOX matches in any case."""
    if folder.matches("INBOX"):
        return bool(_list_pattern(pattern.upper()).fullmatch("INBOX"))
    return bool(_list_pattern(pattern).fullmatch(folder.name))


def _list_pattern(pattern: str) -> re.Pattern:
    """Compile a LIST mailbox pattern to a regex."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "%":
            parts.append("[^/]*")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts))
