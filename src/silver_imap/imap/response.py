# =============================================================================
# Response Renderer
# =============================================================================
# Builds the bytes the server sends back for one command:
#
#   * <text>                  untagged data
#   <tag> OK|NO|BAD <text>    tagged completion
#   + <text>                  continuation request (IDLE only)
#   ... {<n>}\r\n<n bytes>    literal segment inside a FETCH response
#
# Handlers write into a ResponseWriter; the connection loop flushes it to
# the socket once the command finishes.
# =============================================================================

from enum import Enum


CRLF = b"\r\n"


class Status(Enum):
    """Completion status of a tagged response."""
    OK = "OK"
    NO = "NO"
    BAD = "BAD"


class ResponseWriter:
    """
    Accumulates the response to a single command.

    Usage:
        >>> out = ResponseWriter()
        >>> out.untagged("3 EXISTS")
        >>> out.tagged("a1", Status.OK, "SELECT completed")
        >>> out.getvalue()
        b'* 3 EXISTS\\r\\na1 OK SELECT completed\\r\\n'
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._log_lines: list[str] = []

    # -------------------------------------------------------------------------
    # Line Types
    # -------------------------------------------------------------------------

    def untagged(self, text: str) -> None:
        """Append an untagged '* ...' line."""
        self._line(f"* {text}")

    def tagged(
        self,
        tag: str,
        status: Status,
        text: str,
        code: str | None = None,
    ) -> None:
        """
        Append a tagged completion line.

        Args:
            tag: The client's tag, echoed verbatim.
            status: OK, NO or BAD.
            text: Human-readable text.
            code: Optional response code, rendered as "[CODE]".
        """
        if code:
            self._line(f"{tag} {status.value} [{code}] {text}")
        else:
            self._line(f"{tag} {status.value} {text}")

    def continuation(self, text: str) -> None:
        """Append a '+ ...' continuation request."""
        self._line(f"+ {text}")

    def fetch_literal(
        self,
        sequence_number: int,
        items: list[str],
        label: str,
        data: bytes,
    ) -> None:
        """
        Append a FETCH response whose last item is a literal.

        Renders:
            * <seq> FETCH (<items> <label> {<len(data)>}\\r\\n
            <data>)\\r\\n

        The declared length is always len(data), so data must already be
        exactly the bytes the client should receive.
        """
        head = " ".join([*items, f"{label} {{{len(data)}}}"])
        self._line(f"* {sequence_number} FETCH ({head}")
        self._chunks.append(data)
        self._chunks.append(b")" + CRLF)
        self._log_lines.append(f"<{len(data)} literal bytes>)")

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def getvalue(self) -> bytes:
        """All bytes written so far."""
        return b"".join(self._chunks)

    def take(self) -> bytes:
        """Return all bytes written so far and reset the buffer."""
        data = self.getvalue()
        self._chunks.clear()
        self._log_lines.clear()
        return data

    @property
    def log_lines(self) -> list[str]:
        """Lines for debug logging, with literal data abbreviated."""
        return list(self._log_lines)

    def __bool__(self) -> bool:
        return bool(self._chunks)

    def _line(self, text: str) -> None:
        self._chunks.append(text.encode("utf-8") + CRLF)
        self._log_lines.append(text)


# =============================================================================
# Exceptions
# =============================================================================

class IMAPError(Exception):
    """
    Base exception for a command that completes with a non-OK status.

    Attributes:
        status: Status of the tagged response this error turns into.
        code: Optional response code (e.g. "NONEXISTENT").
    """
    status = Status.BAD

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ProtocolError(IMAPError):
    """Malformed or unsupported input. Answered with BAD."""
    status = Status.BAD


class PreconditionError(IMAPError):
    """The session is not in a state that allows the command. Answered with NO."""
    status = Status.NO
