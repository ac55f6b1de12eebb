try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
from datetime import datetime, timezone

from pds.schemas.gmail import EmailMessage
from pds.utils.email_parsing import (
    collect_contacts,
    decode_body,
    extract_body,
    parse_address_list,
    parse_gmail_message,
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def test_decode_body_handles_missing_padding() -> None:
    assert decode_body(_b64("Hi")) == "Hi"
    assert decode_body(None) == ""


def test_extract_body_prefers_plain_text_in_nested_parts() -> None:
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
                    {"mimeType": "text/plain", "body": {"data": _b64("plain")}},
                ],
            },
            {"mimeType": "application/pdf", "body": {"attachmentId": "a1"}},
        ],
    }

    assert extract_body(payload) == "plain"


def test_extract_body_falls_back_to_html_then_raw_body() -> None:
    html_only = {
        "mimeType": "multipart/alternative",
        "parts": [{"mimeType": "text/html", "body": {"data": _b64("<b>hi</b>")}}],
    }
    single_part = {"mimeType": "text/plain", "body": {"data": _b64("raw body")}}
    empty = {"mimeType": "multipart/mixed", "parts": []}

    assert extract_body(html_only) == "<b>hi</b>"
    assert extract_body(single_part) == "raw body"
    assert extract_body(empty) == ""


def test_parse_address_list_handles_named_and_bare_forms() -> None:
    value = 'Alice Example <alice@example.com>, bob@example.com, "Doe, Jane" <jane@example.com>'

    assert parse_address_list(value) == ["alice@example.com", "bob@example.com", "jane@example.com"]
    assert parse_address_list("") == []


def test_parse_gmail_message_extracts_fields() -> None:
    message = {
        "id": "m1",
        "threadId": "t1",
        "internalDate": "1700000000000",
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": "Test Subject"},
                {"name": "From", "value": "Sender <sender@example.com>"},
                {"name": "To", "value": "recipient@example.com"},
                {"name": "Cc", "value": "Other <other@example.com>"},
            ],
            "body": {"data": _b64("Hello there")},
        },
    }

    parsed = parse_gmail_message(message)

    assert parsed.id == "m1"
    assert parsed.thread_id == "t1"
    assert parsed.subject == "Test Subject"
    assert parsed.sender == "sender@example.com"
    assert parsed.recipients == ["recipient@example.com", "other@example.com"]
    assert parsed.body == "Hello there"
    assert parsed.timestamp == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


def test_parse_gmail_message_uses_date_header_without_internal_date() -> None:
    message = {
        "id": "m2",
        "payload": {"headers": [{"name": "Date", "value": "Tue, 14 Nov 2023 22:13:20 +0000"}]},
    }

    parsed = parse_gmail_message(message)

    assert parsed.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert parsed.subject == ""
    assert parsed.recipients == []


def test_collect_contacts_deduplicates() -> None:
    messages = [
        EmailMessage(id="1", sender="a@example.com", recipients=["b@example.com"]),
        EmailMessage(id="2", sender="b@example.com", recipients=["a@example.com", "c@example.com"]),
    ]

    assert set(collect_contacts(messages)) == {"a@example.com", "b@example.com", "c@example.com"}
    assert len(collect_contacts(messages)) == 3
