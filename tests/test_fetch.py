# =============================================================================
# FETCH Rendering Tests
# =============================================================================

import re

from silver_imap.core import Message, MessageFlags
from silver_imap.imap.fetch import (
    DEFAULT_HEADER_FIELDS,
    FetchItems,
    extract_header_fields,
    normalize_crlf,
    render_fetch,
)
from silver_imap.imap.response import ResponseWriter


RAW = (
    "From: alice@example.com\r\n"
    "To: bob@example.com\r\n"
    "Subject: Quarterly\r\n"
    "  report\r\n"
    "Received: from a\r\n"
    "Received: from b\r\n"
    "Date: Mon, 15 Jan 2024 10:30:00 +0000\r\n"
    "\r\n"
    "From: not-a-header@example.com\r\n"
)


def _literal_lengths_match(data: bytes) -> bool:
    """Check every {n} in a response against the bytes that follow it."""
    position = 0
    found = False
    for match in re.finditer(rb"\{(\d+)\}\r\n", data):
        if match.start() < position:
            continue
        found = True
        declared = int(match.group(1))
        literal = data[match.end():match.end() + declared]
        if len(literal) != declared or data[match.end() + declared:match.end() + declared + 3] != b")\r\n":
            return False
        position = match.end() + declared
    return found


class TestNormalizeCRLF:
    def test_bare_lf(self):
        assert normalize_crlf("a\nb\n") == "a\r\nb\r\n"

    def test_existing_crlf_untouched(self):
        assert normalize_crlf("a\r\nb\r\n") == "a\r\nb\r\n"

    def test_mixed(self):
        assert normalize_crlf("a\r\nb\nc") == "a\r\nb\r\nc"


class TestFetchItems:
    def test_scalars(self):
        items = FetchItems.parse("UID FLAGS RFC822.SIZE")
        assert (items.uid, items.flags, items.size) == (True, True, True)
        assert items.header_fields is None
        assert not items.whole_body

    def test_case_insensitive(self):
        items = FetchItems.parse("flags rfc822.size")
        assert items.flags and items.size

    def test_rfc822_size_is_not_whole_body(self):
        assert not FetchItems.parse("RFC822.SIZE").whole_body

    def test_whole_body_forms(self):
        for text in ("BODY[]", "BODY.PEEK[]", "RFC822", "FLAGS RFC822"):
            assert FetchItems.parse(text).whole_body, text

    def test_header_fields_keep_request_order(self):
        items = FetchItems.parse("UID BODY.PEEK[HEADER.FIELDS (Subject From Date)]")
        assert items.header_fields == ("SUBJECT", "FROM", "DATE")

    def test_header_fields_list_does_not_trigger_scalars(self):
        items = FetchItems.parse("BODY.PEEK[HEADER.FIELDS (FLAGS UID)]")
        assert not items.flags
        assert not items.uid

    def test_header_fields_default_list(self):
        items = FetchItems.parse("BODY.PEEK[HEADER.FIELDS]")
        assert items.header_fields == DEFAULT_HEADER_FIELDS

    def test_uid_forced(self):
        assert FetchItems.parse("FLAGS", uid=True).uid


class TestExtractHeaderFields:
    def test_request_order_not_source_order(self):
        block = extract_header_fields(RAW, ("DATE", "FROM"))
        assert block == (
            "Date: Mon, 15 Jan 2024 10:30:00 +0000\r\n"
            "From: alice@example.com\r\n"
            "\r\n"
        )

    def test_body_is_not_searched(self):
        block = extract_header_fields(RAW, ("FROM",))
        assert "not-a-header" not in block

    def test_folded_field_and_repeats(self):
        block = extract_header_fields(RAW, ("SUBJECT", "RECEIVED"))
        assert block == (
            "Subject: Quarterly\r\n"
            "  report\r\n"
            "Received: from a\r\n"
            "Received: from b\r\n"
            "\r\n"
        )

    def test_missing_names_are_skipped(self):
        assert extract_header_fields(RAW, ("X-NOTHING",)) == "\r\n"

    def test_prefix_must_end_with_colon(self):
        raw = "To: a@example.com\r\nTopic: x\r\n\r\n"
        assert extract_header_fields(raw, ("TO",)) == "To: a@example.com\r\n\r\n"


class TestRenderFetch:
    def _message(self, raw=RAW, flags=MessageFlags.NONE) -> Message:
        return Message(id=42, folder="INBOX", raw_message=raw, flags=flags)

    def test_scalar_items_in_fixed_order(self):
        out = ResponseWriter()
        message = self._message(flags=MessageFlags.SEEN | MessageFlags.FLAGGED)
        render_fetch(out, 3, message, FetchItems.parse("RFC822.SIZE FLAGS", uid=True))
        assert out.getvalue() == (
            f"* 3 FETCH (UID 42 FLAGS (\\Seen \\Flagged) RFC822.SIZE {len(RAW)})\r\n"
        ).encode()

    def test_size_counts_normalized_bytes(self):
        out = ResponseWriter()
        render_fetch(out, 1, self._message(raw="A: b\n\nhi\n"), FetchItems.parse("RFC822.SIZE"))
        assert out.getvalue() == b"* 1 FETCH (RFC822.SIZE 12)\r\n"

    def test_empty_flags(self):
        out = ResponseWriter()
        render_fetch(out, 1, self._message(), FetchItems.parse("FLAGS"))
        assert out.getvalue() == b"* 1 FETCH (FLAGS ())\r\n"

    def test_nothing_matched_still_reports_flags(self):
        out = ResponseWriter()
        render_fetch(out, 1, self._message(), FetchItems.parse("INTERNALDATE"))
        assert out.getvalue() == b"* 1 FETCH (FLAGS ())\r\n"

    def test_whole_body_literal(self):
        out = ResponseWriter()
        raw = "Subject: x\n\nbody\n"
        render_fetch(out, 2, self._message(raw=raw), FetchItems.parse("BODY.PEEK[]", uid=True))

        expected_body = b"Subject: x\r\n\r\nbody\r\n"
        assert out.getvalue() == (
            b"* 2 FETCH (UID 42 BODY[] {%d}\r\n" % len(expected_body)
            + expected_body
            + b")\r\n"
        )
        assert _literal_lengths_match(out.getvalue())

    def test_header_literal_wins_over_body(self):
        out = ResponseWriter()
        items = FetchItems.parse("UID BODY[] BODY.PEEK[HEADER.FIELDS (TO)]", uid=True)
        render_fetch(out, 1, self._message(), items)

        data = out.getvalue()
        assert data.startswith(b"* 1 FETCH (UID 42 BODY[HEADER] {23}\r\n")
        assert b"To: bob@example.com\r\n\r\n)\r\n" in data
        assert b"BODY[] {" not in data
        assert _literal_lengths_match(data)

    def test_utf8_length_is_in_bytes(self):
        out = ResponseWriter()
        raw = "Subject: café\r\n\r\nété\r\n"
        render_fetch(out, 1, self._message(raw=raw), FetchItems.parse("RFC822"))
        assert _literal_lengths_match(out.getvalue())
        assert f"{{{len(raw.encode('utf-8'))}}}".encode() in out.getvalue()
