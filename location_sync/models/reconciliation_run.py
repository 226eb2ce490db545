"""Reconciliation Run Model - progress of one cache re-derivation sweep"""
from sqlalchemy import Column, Integer, String, Text, DateTime

from location_sync.database import Base
from location_sync.utils.datetime_utils import utcnow

RUN_RUNNING = "RUNNING"
RUN_PAUSED = "PAUSED"
RUN_COMPLETED = "COMPLETED"
RUN_FAILED = "FAILED"

PHASE_ENTITIES = "ENTITIES"
PHASE_ADDRESSES = "ADDRESSES"


class ReconciliationRun(Base):
    """One pass over location entities, then address documents; cursors allow resuming between pages"""
    __tablename__ = "reconciliation_run"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(String(20), nullable=False, default=RUN_RUNNING, index=True)  # RUNNING, PAUSED, COMPLETED, FAILED
    trigger_type = Column(String(20), nullable=False, default="MANUAL")  # MANUAL, SCHEDULED, BACKFILL, MIGRATION
    representation = Column(String(10), nullable=False)  # Adapter in effect when the run started
    page_size = Column(Integer, nullable=False)
    cursor = Column(Integer, nullable=False, default=0)  # Last location_entity.id processed
    pages_processed = Column(Integer, nullable=False, default=0)
    rows_checked = Column(Integer, nullable=False, default=0)
    rows_corrected = Column(Integer, nullable=False, default=0)
    rows_failed = Column(Integer, nullable=False, default=0)
    phase = Column(String(20), nullable=False, default=PHASE_ENTITIES)  # ENTITIES, then ADDRESSES
    address_cursor = Column(Integer, nullable=False, default=0)  # Last address.id processed
    addresses_rewritten = Column(Integer, nullable=False, default=0)
    addresses_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    finished_at = Column(DateTime(timezone=True))
