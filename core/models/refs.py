"""Pointer to a persisted reconciliation artifact."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class DataReference(BaseModel):
    """Where a stored result lives and how to check it is unchanged.

    Activities return this instead of the full result so workflow history
    stays small; get_json() re-hashes the file before handing it back.
    """
    model_config = ConfigDict(frozen=True)

    storage_uri: str = Field(..., description="Absolute path of the stored JSON")
    content_hash: str = Field(..., min_length=64, max_length=64, description="SHA256 hex digest")
    content_type: str = Field(default="application/json")
    size_bytes: int = Field(..., ge=0)
    stored_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def path(self) -> Path:
        return Path(self.storage_uri)
