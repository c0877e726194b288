from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SnapshotInfo(BaseModel):
    """Header row of a cached index snapshot."""

    format_version: int
    switch_prefix: str
    created_at: datetime
    payload_size: int  # compressed bytes
