"""Helpers turning Gmail API message resources into ``EmailMessage`` models."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Any, Dict, Iterable, Optional

from pds.schemas.gmail import EmailMessage

logger = logging.getLogger(__name__)


def decode_body(data: Optional[str]) -> str:
    """Decode a base64url body, tolerating stripped padding."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        logger.warning("Could not decode message body; returning it undecoded")
        return data


def _find_part_data(part: Dict[str, Any], mime_type: str) -> Optional[str]:
    if part.get("mimeType") == mime_type:
        data = (part.get("body") or {}).get("data")
        if data:
            return data
    for child in part.get("parts") or []:
        found = _find_part_data(child, mime_type)
        if found:
            return found
    return None


def extract_body(payload: Dict[str, Any]) -> str:
    """Prefer a plain-text part, then HTML, then the payload's own body."""
    for mime_type in ("text/plain", "text/html"):
        data = _find_part_data(payload, mime_type)
        if data:
            return decode_body(data)
    return decode_body((payload.get("body") or {}).get("data"))


def parse_address_list(value: Optional[str]) -> list[str]:
    """Split ``Name <addr>, addr2`` style headers into bare addresses."""
    if not value:
        return []
    addresses: list[str] = []
    for _, address in getaddresses([value]):
        address = address.strip()
        if address and address not in addresses:
            addresses.append(address)
    return addresses


def _headers(payload: Dict[str, Any]) -> Dict[str, str]:
    return {
        header["name"].lower(): header.get("value", "")
        for header in payload.get("headers") or []
        if header.get("name")
    }


def _timestamp(message: Dict[str, Any], headers: Dict[str, str]) -> Optional[datetime]:
    internal_date = message.get("internalDate")
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError):
            pass
    if headers.get("date"):
        try:
            return parsedate_to_datetime(headers["date"])
        except (TypeError, ValueError):
            return None
    return None


def parse_gmail_message(message: Dict[str, Any]) -> EmailMessage:
    """Normalize a ``format=full`` Gmail message."""
    payload = message.get("payload") or {}
    headers = _headers(payload)

    _, sender = parseaddr(headers.get("from", ""))
    recipients = parse_address_list(
        ", ".join(value for value in (headers.get("to"), headers.get("cc")) if value)
    )

    return EmailMessage(
        id=message.get("id", ""),
        thread_id=message.get("threadId"),
        subject=headers.get("subject", ""),
        body=extract_body(payload),
        sender=sender,
        recipients=recipients,
        timestamp=_timestamp(message, headers),
    )


def collect_contacts(messages: Iterable[EmailMessage]) -> list[str]:
    contacts = set()
    for message in messages:
        if message.sender:
            contacts.add(message.sender)
        contacts.update(message.recipients)
    return sorted(contacts)


__all__ = [
    "collect_contacts",
    "decode_body",
    "extract_body",
    "parse_address_list",
    "parse_gmail_message",
]
