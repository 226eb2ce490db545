"""
Reconciliation API Routes
Start, resume and inspect cache reconciliation runs.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from location_sync.database import get_db, get_session_factory
from location_sync.exceptions import NotFoundError
from location_sync.models import ReconciliationRun
from location_sync.schemas.reconciliation import ReconciliationRunRequest, ReconciliationRunResponse
from location_sync.sync.reconciliation import ReconciliationJob
from location_sync.sync.representation import get_adapter

router = APIRouter()


@router.post("/runs", response_model=ReconciliationRunResponse)
async def run_reconciliation(request: ReconciliationRunRequest):
    """
    Run reconciliation in the request, page by page.

    With max_pages the run pauses and can be resumed by posting its run_id.
    """
    job = ReconciliationJob(
        session_factory=get_session_factory(),
        page_size=request.page_size,
        adapter=get_adapter(request.representation),
    )
    return await job.run(run_id=request.run_id, max_pages=request.max_pages, trigger_type=request.trigger_type)


@router.get("/runs", response_model=List[ReconciliationRunResponse])
async def list_reconciliation_runs(
    status: Optional[str] = Query(None, description="RUNNING, PAUSED, COMPLETED or FAILED"),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """List reconciliation runs, newest first"""
    query = select(ReconciliationRun)
    if status:
        query = query.where(ReconciliationRun.status == status.upper())
    query = query.order_by(ReconciliationRun.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/runs/{run_id}", response_model=ReconciliationRunResponse)
async def get_reconciliation_run(run_id: int, db: AsyncSession = Depends(get_db)):
    """Get a specific reconciliation run"""
    run = await db.get(ReconciliationRun, run_id)
    if run is None:
        raise NotFoundError(f"Reconciliation run {run_id} not found")
    return run
