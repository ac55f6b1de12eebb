"""Normalized Gmail fetch results."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EmailMessage(BaseModel):
    """One message reduced to the fields the data store keeps."""

    id: str
    thread_id: Optional[str] = None
    subject: str = ""
    body: str = ""
    sender: str = ""
    recipients: list[str] = Field(default_factory=list)
    timestamp: Optional[datetime] = None


class GmailData(BaseModel):
    messages: list[EmailMessage] = Field(default_factory=list)
    contacts: list[str] = Field(
        default_factory=list,
        description="Distinct sender and recipient addresses across all messages.",
    )


__all__ = ["EmailMessage", "GmailData"]
