"""Request and response models for data source administration."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from pds.models.data_source import CredentialRecord


class StoreCredentialsRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    data_source_type: str = Field(..., description="One of the supported data source types.")
    credentials: Union[Dict[str, Any], str]


class DataSourceSummary(BaseModel):
    """Credential metadata safe to return to callers; never carries secrets."""

    user_id: str
    data_source_type: str
    last_ingested_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "DataSourceSummary":
        return cls(
            user_id=record.user_id,
            data_source_type=record.data_source_type.value,
            last_ingested_at=record.last_ingested_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class IngestionRunSummary(BaseModel):
    """Outcome of one ingestion pass, per provider."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    succeeded: Dict[str, list[str]] = Field(default_factory=dict)
    failed: Dict[str, list[str]] = Field(default_factory=dict)
    skipped: bool = Field(
        False, description="True when another pass was already running."
    )


__all__ = ["DataSourceSummary", "IngestionRunSummary", "StoreCredentialsRequest"]
