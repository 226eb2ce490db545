"""
Prometheus Metrics for the Location Sync Service
Exposes metrics for cache synchronization, reconciliation sweeps and store operations.
"""
from prometheus_client import Counter, Histogram, Info, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Application Info
# =============================================================================
app_info = Info('location_sync', 'Location Sync Service Information')
app_info.info({
    'version': '1.0.0',
    'service': 'location-sync',
    'description': 'Address coordinate cache synchronization'
})


# =============================================================================
# Synchronization Engine Metrics
# =============================================================================
cache_writes_total = Counter(
    'location_sync_cache_writes_total',
    'Location entity cache rows written',
    ['trigger']  # address_changed, active_address_changed, address_deleted, reconciliation
)

cache_writes_skipped_total = Counter(
    'location_sync_cache_writes_skipped_total',
    'Handler invocations that changed nothing (cache already equal to source)',
    ['trigger']
)

sync_failures_total = Counter(
    'location_sync_failures_total',
    'Synchronization failures that rolled back the triggering write',
    ['trigger', 'error_type']
)


# =============================================================================
# Reconciliation Metrics
# =============================================================================
reconciliation_rows_total = Counter(
    'location_sync_reconciliation_rows_total',
    'Rows handled by reconciliation',
    ['outcome']  # checked, corrected, failed, address_rewritten, address_failed
)

reconciliation_page_duration_seconds = Histogram(
    'location_sync_reconciliation_page_duration_seconds',
    'Time spent reconciling one page',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)


# =============================================================================
# Store Operations Metrics
# =============================================================================
store_operations_total = Counter(
    'location_sync_store_operations_total',
    'Total address / location entity store operations',
    ['store', 'operation']  # create, update, delete, set_active_address
)


# =============================================================================
# Helper Functions
# =============================================================================
def get_metrics():
    """Generate metrics in Prometheus format"""
    return generate_latest()


def get_content_type():
    """Get the content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST


def record_cache_write(trigger: str, rows: int):
    """Record the outcome of one change-guarded cache write"""
    if rows:
        cache_writes_total.labels(trigger=trigger).inc(rows)
    else:
        cache_writes_skipped_total.labels(trigger=trigger).inc()


def record_sync_failure(trigger: str, error_type: str):
    """Record a synchronization failure"""
    sync_failures_total.labels(trigger=trigger, error_type=error_type).inc()


def record_reconciliation_rows(checked: int, corrected: int, failed: int):
    """Record rows handled by one reconciliation page"""
    reconciliation_rows_total.labels(outcome='checked').inc(checked)
    reconciliation_rows_total.labels(outcome='corrected').inc(corrected)
    reconciliation_rows_total.labels(outcome='failed').inc(failed)


def record_address_documents(rewritten: int, failed: int):
    """Record address documents re-encoded by one reconciliation page"""
    reconciliation_rows_total.labels(outcome='address_rewritten').inc(rewritten)
    reconciliation_rows_total.labels(outcome='address_failed').inc(failed)


def record_store_operation(store: str, operation: str):
    """Record an address / location entity store operation"""
    store_operations_total.labels(store=store, operation=operation).inc()
