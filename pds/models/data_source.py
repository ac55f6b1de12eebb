"""
Domain models for data source credential persistence.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DataSourceType(str, Enum):
    """Supported external data sources."""

    GMAIL = "gmail"
    PLAID = "plaid"


class EncryptedCredentials(BaseModel):
    """Opaque ciphertext produced by the token cipher."""

    iv: str
    content: str


class CredentialRecord(BaseModel):
    """Represents one (user, data source) credential record in the store."""

    pk: str = Field(..., description="Partition key derived from the user identifier.")
    sk: str = Field(..., description="Sort key naming the data source.")
    user_id: str
    data_source_type: DataSourceType
    credentials: EncryptedCredentials
    last_ingested_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def partition_key(user_id: str) -> str:
        return f"user#{user_id}"

    @staticmethod
    def sort_key(data_source_type: DataSourceType) -> str:
        return f"datasource#{data_source_type.value}"


__all__ = ["CredentialRecord", "DataSourceType", "EncryptedCredentials"]
