"""Unit tests for header parsing helpers."""

import base64
from datetime import datetime, timezone

from email_unifier.models import EmailAddress
from email_unifier.parsing import (
    clean_message_id,
    dedupe_addresses,
    has_reply_marker,
    normalize_subject,
    parse_address,
    parse_address_list,
    parse_epoch_ms,
    parse_header_date,
    parse_iso_date,
    parse_references,
)
from email_unifier.parsing.bodies import decode_base64url, html_to_text, make_snippet


class TestAddressParsing:
    """Test suite for address list parsing."""

    def test_parse_name_and_bare_address(self) -> None:
        """Test a header mixing display-name and bare mailboxes."""
        result = parse_address_list('"Ann Example" <ann@example.com>, bob@example.com')

        assert result == [
            EmailAddress(email="ann@example.com", name="Ann Example"),
            EmailAddress(email="bob@example.com"),
        ]

    def test_parse_list_input(self) -> None:
        """Test that a list of header values is flattened in order."""
        result = parse_address_list(["Ann <ann@example.com>", "carol@example.com"])

        assert [a.email for a in result] == ["ann@example.com", "carol@example.com"]

    def test_empty_values(self) -> None:
        """Test that missing headers parse to an empty list."""
        assert parse_address_list(None) == []
        assert parse_address_list("") == []
        assert parse_address_list([]) == []

    def test_parse_address_returns_first(self) -> None:
        """Test single-address parsing."""
        assert parse_address("Ann <ann@example.com>, bob@example.com") == EmailAddress(
            email="ann@example.com", name="Ann"
        )
        assert parse_address(None) is None

    def test_dedupe_is_case_insensitive(self) -> None:
        """Test that duplicates collapse and a later display name fills a gap."""
        result = dedupe_addresses(
            [
                EmailAddress(email="ann@example.com"),
                EmailAddress(email="ANN@example.com", name="Ann"),
                EmailAddress(email="bob@example.com", name="Bob"),
            ]
        )

        assert result == [
            EmailAddress(email="ann@example.com", name="Ann"),
            EmailAddress(email="bob@example.com", name="Bob"),
        ]


class TestSubject:
    """Test suite for subject normalization."""

    def test_strips_stacked_reply_prefixes(self) -> None:
        """Test that a run of Re/Fwd/Fw tokens is stripped and case-folded."""
        assert normalize_subject("Re: RE: Fwd: Hello World ") == "hello world"
        assert normalize_subject("Fw:Re: Budget") == "budget"

    def test_keeps_words_starting_with_re(self) -> None:
        """Test that only real markers are stripped."""
        assert normalize_subject("Review: Q3 plan") == "review: q3 plan"

    def test_empty_subject(self) -> None:
        """Test that missing subjects normalize to the empty string."""
        assert normalize_subject(None) == ""
        assert normalize_subject("   ") == ""

    def test_reply_marker(self) -> None:
        """Test reply marker detection."""
        assert has_reply_marker("Re: Hello")
        assert has_reply_marker("FWD: Hello")
        assert not has_reply_marker("Hello")
        assert not has_reply_marker(None)


class TestReferences:
    """Test suite for Message-ID reference parsing."""

    def test_clean_message_id(self) -> None:
        """Test bracket and whitespace stripping."""
        assert clean_message_id("<abc@example.com>") == "abc@example.com"
        assert clean_message_id("  abc@example.com ") == "abc@example.com"
        assert clean_message_id("<>") is None
        assert clean_message_id(None) is None

    def test_parse_references_keeps_order_and_dedupes(self) -> None:
        """Test that references keep the earliest-first order."""
        value = "<a@example.com> <b@example.com>\r\n <a@example.com>"

        assert parse_references(value) == ["a@example.com", "b@example.com"]

    def test_parse_unbracketed_references(self) -> None:
        """Test whitespace splitting when no brackets are present."""
        assert parse_references("a@example.com b@example.com") == [
            "a@example.com",
            "b@example.com",
        ]
        assert parse_references(None) == []


class TestDates:
    """Test suite for date parsing."""

    def test_header_date_is_converted_to_utc(self) -> None:
        """Test RFC 2822 dates with an offset."""
        parsed = parse_header_date("Tue, 14 Nov 2023 23:13:20 +0100")

        assert parsed == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_invalid_header_date(self) -> None:
        """Test that unparseable dates become None."""
        assert parse_header_date("not a date") is None
        assert parse_header_date(None) is None

    def test_iso_date_with_long_fraction(self) -> None:
        """Test Graph-style timestamps with seven fractional digits."""
        parsed = parse_iso_date("2023-11-14T22:13:20.1234567Z")

        assert parsed == datetime(2023, 11, 14, 22, 13, 20, 123456, tzinfo=timezone.utc)

    def test_invalid_iso_date(self) -> None:
        """Test that garbage is tolerated."""
        assert parse_iso_date("garbage") is None
        assert parse_iso_date(None) is None

    def test_epoch_ms(self) -> None:
        """Test Gmail internalDate parsing."""
        assert parse_epoch_ms("1700000000000") == datetime(
            2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
        )
        assert parse_epoch_ms("soon") is None
        assert parse_epoch_ms(None) is None


class TestBodies:
    """Test suite for body helpers."""

    def test_decode_base64url_without_padding(self) -> None:
        """Test Gmail body data decoding."""
        data = base64.urlsafe_b64encode(b"Hello there").decode("ascii").rstrip("=")

        assert decode_base64url(data) == "Hello there"
        assert decode_base64url(None) == ""

    def test_html_to_text(self) -> None:
        """Test tag stripping, entity decoding and script removal."""
        markup = "<p>Tom &amp; Jerry</p><style>p { color: red }</style>"

        assert html_to_text(markup) == "Tom & Jerry"

    def test_html_to_text_keeps_angle_brackets_in_text(self) -> None:
        """Test that comparison operators in prose survive and comments are dropped."""
        markup = "<p>if a < b and c > d then</p><!-- x > y -->"

        assert html_to_text(markup) == "if a < b and c > d then"

    def test_html_to_text_block_structure(self) -> None:
        """Test that block elements become separate lines."""
        markup = "<html><head><title>t</title></head><body><p>One</p><div>Two</div></body></html>"

        assert html_to_text(markup) == "One\nTwo"
        assert html_to_text(None) == ""

    def test_make_snippet(self) -> None:
        """Test whitespace collapsing and truncation."""
        assert make_snippet("a\n  b   c", length=3) == "a b"
        assert make_snippet(None) == ""
