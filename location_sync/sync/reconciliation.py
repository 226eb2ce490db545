"""
Reconciliation job. Re-derives every location entity's coordinate cache from
its current active address.

Used for the first backfill, after switching the coordinate representation,
and as a periodic integrity sweep. Entities are processed in pages keyed on
id, then a second keyed pass re-encodes every address's coordinates document
in the run's representation. Each page (its corrections and the run's
cursors) commits as one transaction, so a run can be interrupted between
pages and resumed. Source addresses are read under a share lock and the
outcome depends only on current address data, so running next to live
traffic is safe.

A row whose correction fails is logged, counted and skipped inside its own
savepoint; it never fails the page.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from location_sync.config import get_settings
from location_sync.database import get_session_factory, unit_of_work
from location_sync.exceptions import AddressReferenceError, NotFoundError, ValidationError
from location_sync.models import Address, LocationEntity, ReconciliationRun
from location_sync.models.reconciliation_run import (
    PHASE_ADDRESSES, PHASE_ENTITIES, RUN_COMPLETED, RUN_FAILED, RUN_PAUSED, RUN_RUNNING,
)
from location_sync.sync import engine as sync_engine
from location_sync.sync.representation import Coordinate, RepresentationAdapter, get_adapter
from location_sync.utils.datetime_utils import utcnow
from location_sync.utils.metrics import (
    reconciliation_page_duration_seconds, record_address_documents, record_reconciliation_rows,
)

logger = logging.getLogger(__name__)

TRIGGER_TYPES = ("MANUAL", "SCHEDULED", "BACKFILL", "MIGRATION")


@dataclass
class PageResult:
    """Outcome of one page"""
    checked: int = 0
    corrected: int = 0
    failed: int = 0
    last_id: Optional[int] = None
    failed_ids: List[int] = field(default_factory=list)


class ReconciliationJob:
    """Pageable, resumable cache re-derivation"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        page_size: Optional[int] = None,
        adapter: Optional[RepresentationAdapter] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.page_size = page_size or get_settings().reconciliation_page_size
        self.adapter = adapter or get_adapter()
        if self.page_size < 1:
            raise ValidationError(f"page_size must be >= 1, got {self.page_size}")

    async def start(self, trigger_type: str = "MANUAL") -> ReconciliationRun:
        """Register a new run positioned before the first entity"""
        if trigger_type not in TRIGGER_TYPES:
            raise ValidationError(f"Unknown trigger type {trigger_type!r}, expected one of {TRIGGER_TYPES}")

        async with self.session_factory() as session:
            async with unit_of_work(session):
                run = ReconciliationRun(
                    status=RUN_RUNNING,
                    trigger_type=trigger_type,
                    representation=self.adapter.name,
                    page_size=self.page_size,
                    cursor=0,
                    pages_processed=0,
                    rows_checked=0,
                    rows_corrected=0,
                    rows_failed=0,
                    phase=PHASE_ENTITIES,
                    address_cursor=0,
                    addresses_rewritten=0,
                    addresses_failed=0,
                )
                session.add(run)
                await session.flush()

        logger.info(f"Reconciliation run {run.id} started ({trigger_type}, {self.adapter.name}, page size {self.page_size})")
        return run

    async def run(
        self,
        run_id: Optional[int] = None,
        max_pages: Optional[int] = None,
        trigger_type: str = "MANUAL",
    ) -> ReconciliationRun:
        """
        Process pages until both passes are exhausted (COMPLETED) or max_pages
        pages were done in this call (PAUSED). Passing run_id resumes that run
        from its cursor. A page-level failure marks the run FAILED and re-raises.
        """
        if run_id is None:
            run = await self.start(trigger_type)
            run_id = run.id
        else:
            run = await self._load(run_id)
            if run.status == RUN_COMPLETED:
                logger.info(f"Reconciliation run {run_id} already completed")
                return run
            # A run writes one representation from start to finish
            if run.representation != self.adapter.name:
                logger.warning(
                    f"Reconciliation run {run_id} was started with '{run.representation}', "
                    f"not '{self.adapter.name}'; resuming with '{run.representation}'"
                )
                self.adapter = get_adapter(run.representation)
            logger.info(
                f"Resuming reconciliation run {run_id} in phase {run.phase} "
                f"(entity cursor {run.cursor}, address cursor {run.address_cursor})"
            )

        pages = 0
        while True:
            if max_pages is not None and pages >= max_pages:
                return await self._finish(run_id, RUN_PAUSED)

            try:
                done = await self._process_next_page(run_id)
            except Exception as e:
                logger.error(f"Reconciliation run {run_id} failed: {e}", exc_info=True)
                await self._finish(run_id, RUN_FAILED, error_message=str(e))
                raise

            if done:
                return await self._finish(run_id, RUN_COMPLETED)
            pages += 1

    async def _process_next_page(self, run_id: int) -> bool:
        """
        Reconcile the next page of the run's current phase.

        Entities come first; once they are exhausted the run moves on to
        re-encoding address documents. Returns True when both are exhausted.
        """
        async with self.session_factory() as session:
            async with unit_of_work(session):
                run = await session.get(ReconciliationRun, run_id)
                run.status = RUN_RUNNING
                entities = False

                if run.phase == PHASE_ENTITIES:
                    with reconciliation_page_duration_seconds.time():
                        page = await self.reconcile_page(session, run.cursor)
                    if page.last_id is not None:
                        run.cursor = page.last_id
                        run.pages_processed += 1
                        run.rows_checked += page.checked
                        run.rows_corrected += page.corrected
                        run.rows_failed += page.failed
                        entities = True
                    else:
                        logger.info(f"Reconciliation run {run_id}: entities done, re-encoding address documents")
                        run.phase = PHASE_ADDRESSES

                if run.phase == PHASE_ADDRESSES:
                    with reconciliation_page_duration_seconds.time():
                        page = await self.reencode_page(session, run.address_cursor)
                    if page.last_id is None:
                        return True
                    run.address_cursor = page.last_id
                    run.addresses_rewritten += page.corrected
                    run.addresses_failed += page.failed

        if entities:
            record_reconciliation_rows(page.checked, page.corrected, page.failed)
            logger.info(
                f"Reconciliation run {run_id}: page up to entity {page.last_id} "
                f"checked={page.checked} corrected={page.corrected} failed={page.failed}"
            )
            if page.failed_ids:
                logger.warning(f"Reconciliation run {run_id}: location entities left uncorrected: {page.failed_ids}")
        else:
            record_address_documents(page.corrected, page.failed)
            logger.info(
                f"Reconciliation run {run_id}: page up to address {page.last_id} "
                f"checked={page.checked} rewritten={page.corrected} failed={page.failed}"
            )
            if page.failed_ids:
                logger.warning(f"Reconciliation run {run_id}: address documents left as they were: {page.failed_ids}")
        return False

    async def reconcile_page(self, session: AsyncSession, after_id: int) -> PageResult:
        """Check and correct up to page_size entities with id > after_id"""
        result = await session.execute(
            select(
                LocationEntity.id,
                LocationEntity.active_address_id,
                LocationEntity.cached_latitude,
                LocationEntity.cached_longitude,
                LocationEntity.cached_point,
                LocationEntity.cached_point_format,
                LocationEntity.is_location_verified,
            )
            .where(LocationEntity.id > after_id)
            .where(or_(
                LocationEntity.active_address_id.is_not(None),
                LocationEntity.cached_latitude.is_not(None),
                LocationEntity.cached_longitude.is_not(None),
                LocationEntity.cached_point.is_not(None),
                LocationEntity.is_location_verified.is_(True),
            ))
            .order_by(LocationEntity.id)
            .limit(self.page_size)
        )
        rows = result.all()

        page = PageResult()
        for row in rows:
            page.checked += 1
            page.last_id = row.id
            try:
                async with session.begin_nested():
                    if await self.reconcile_entity(session, row):
                        page.corrected += 1
            except Exception as e:
                page.failed += 1
                page.failed_ids.append(row.id)
                logger.warning(f"Reconciliation skipped location entity {row.id}: {e}")
        return page

    async def reconcile_entity(self, session: AsyncSession, row) -> bool:
        """
        Correct one entity's cache if it differs from its source. Returns True if written.

        row carries the entity's id, pointer and cache columns. The source
        address is read here under a share lock, so a coordinate update
        committed after the page was selected is what gets written.
        """
        pointer = row.active_address_id
        dangling = False
        try:
            coordinate, is_verified = await sync_engine.resolve_source(session, pointer)
        except AddressReferenceError:
            coordinate, is_verified, dangling = None, False, True

        desired = sync_engine.desired_cache(coordinate, is_verified, self.adapter)
        if not dangling and self._cache_matches(row, desired):
            return False

        if dangling:
            logger.warning(f"Location entity {row.id} points at missing address {pointer}; detaching")

        pointer_matches = (
            LocationEntity.active_address_id.is_(None) if pointer is None
            else LocationEntity.active_address_id == pointer
        )
        written = await sync_engine.write_cache(
            session,
            [LocationEntity.id == row.id, pointer_matches],
            coordinate,
            is_verified,
            trigger=sync_engine.TRIGGER_RECONCILIATION,
            adapter=self.adapter,
            force=True,
            extra_values={"active_address_id": None} if dangling else None,
        )
        if written:
            logger.info(f"Location entity {row.id} cache corrected from address {pointer}")
        return bool(written)

    async def reencode_page(self, session: AsyncSession, after_id: int) -> PageResult:
        """Re-encode up to page_size address documents with id > after_id in the run's representation"""
        result = await session.execute(
            select(Address.id, Address.latitude, Address.longitude, Address.coordinates)
            .where(Address.id > after_id)
            .order_by(Address.id)
            .limit(self.page_size)
        )
        rows = result.all()

        page = PageResult()
        for row in rows:
            page.checked += 1
            page.last_id = row.id
            try:
                async with session.begin_nested():
                    if await self.reencode_address(session, row):
                        page.corrected += 1
            except Exception as e:
                page.failed += 1
                page.failed_ids.append(row.id)
                logger.warning(f"Reconciliation skipped address {row.id}: {e}")
        return page

    async def reencode_address(self, session: AsyncSession, row) -> bool:
        """Rewrite one address's coordinates document if it is not in the adapter's shape. Returns True if written."""
        document = self.adapter.encode(Coordinate.from_values(row.latitude, row.longitude))
        if row.coordinates == document:
            return False

        # Only if lat/lng are still what the document was derived from
        result = await session.execute(
            update(Address)
            .where(
                Address.id == row.id,
                Address.latitude.is_not_distinct_from(row.latitude),
                Address.longitude.is_not_distinct_from(row.longitude),
            )
            .values(coordinates=document, updated_at=Address.updated_at)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    @staticmethod
    def _cache_matches(row, desired: dict) -> bool:
        return (
            row.cached_latitude == desired["cached_latitude"]
            and row.cached_longitude == desired["cached_longitude"]
            and row.cached_point == desired["cached_point"]
            and row.cached_point_format == desired["cached_point_format"]
            and bool(row.is_location_verified) == desired["is_location_verified"]
        )

    async def _load(self, run_id: int) -> ReconciliationRun:
        async with self.session_factory() as session:
            run = await session.get(ReconciliationRun, run_id)
            if run is None:
                raise NotFoundError(f"Reconciliation run {run_id} not found")
            return run

    async def _finish(self, run_id: int, status: str, error_message: Optional[str] = None) -> ReconciliationRun:
        async with self.session_factory() as session:
            async with unit_of_work(session):
                run = await session.get(ReconciliationRun, run_id)
                run.status = status
                run.error_message = error_message
                if status in (RUN_COMPLETED, RUN_FAILED):
                    run.finished_at = utcnow()
                await session.flush()

        logger.info(
            f"Reconciliation run {run_id} {status}: pages={run.pages_processed} checked={run.rows_checked} "
            f"corrected={run.rows_corrected} failed={run.rows_failed} "
            f"addresses_rewritten={run.addresses_rewritten} addresses_failed={run.addresses_failed}"
        )
        return run
