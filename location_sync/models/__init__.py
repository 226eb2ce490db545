"""SQLAlchemy Models"""
from location_sync.models.address import Address
from location_sync.models.location_entity import LocationEntity, CACHE_FIELDS
from location_sync.models.reconciliation_run import ReconciliationRun

__all__ = [
    "Address",
    "LocationEntity",
    "CACHE_FIELDS",
    "ReconciliationRun",
]
