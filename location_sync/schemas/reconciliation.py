"""
Reconciliation Run Schemas
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from location_sync.utils.datetime_utils import serialize_datetime_utc


class ReconciliationRunRequest(BaseModel):
    """Start a new run, or resume one with run_id"""
    run_id: Optional[int] = Field(None, description="Resume this run from its cursor")
    page_size: Optional[int] = Field(None, ge=1, le=10000)
    max_pages: Optional[int] = Field(None, ge=1, description="Pause after this many pages")
    trigger_type: Literal["MANUAL", "SCHEDULED", "BACKFILL", "MIGRATION"] = "MANUAL"
    representation: Optional[Literal["point", "pair"]] = Field(
        None, description="Defaults to the configured representation"
    )


class ReconciliationRunResponse(BaseModel):
    """Schema for reconciliation run response"""
    id: int
    status: str
    trigger_type: str
    representation: str
    page_size: int
    cursor: int
    pages_processed: int
    rows_checked: int
    rows_corrected: int
    rows_failed: int
    phase: str
    address_cursor: int
    addresses_rewritten: int
    addresses_failed: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_encoders = {datetime: serialize_datetime_utc}
