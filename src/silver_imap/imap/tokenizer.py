# =============================================================================
# Command Tokenizer
# =============================================================================
# Splits one line of client input into tag, verb and arguments.
#
# Only single-line commands are understood. Literal arguments ({n} followed
# by a continuation) are not supported, and arguments are split on plain
# whitespace, so quoted strings containing spaces are not kept together.
# =============================================================================

from dataclasses import dataclass, field

from silver_imap.imap.response import ProtocolError


@dataclass
class Command:
    """
    One tokenized client command.

    Attributes:
        tag: Client-chosen correlation token, echoed back verbatim.
        verb: Command name, upper-cased ("UID" for the compound forms).
        args: Remaining tokens, case preserved.
    """
    tag: str
    verb: str
    args: list[str] = field(default_factory=list)

    @property
    def subcommand(self) -> str | None:
        """For UID commands, the upper-cased sub-verb (FETCH, SEARCH, STORE)."""
        if self.verb == "UID" and self.args:
            return self.args[0].upper()
        return None


def tokenize(line: str) -> Command:
    """
    Split a trimmed command line into a Command.

    Args:
        line: One line of client input without its line terminator.

    Returns:
        The parsed Command.

    Raises:
        ProtocolError: If the line has fewer than two tokens. There is no
                       usable tag in that case, so the caller answers with
                       an untagged BAD.
    """
    parts = line.split()
    if len(parts) < 2:
        raise ProtocolError("Invalid command format")
    return Command(tag=parts[0], verb=parts[1].upper(), args=parts[2:])


def unquote(token: str) -> str:
    """Strip surrounding double quotes from an argument."""
    return token.strip('"')


def join_items(tokens: list[str]) -> str:
    """
    Join a parenthesized item list back into one string, minus the
    outer parentheses.

    Example:
        >>> join_items(["(UID", "FLAGS)"])
        'UID FLAGS'
    """
    return " ".join(tokens).strip("()")
