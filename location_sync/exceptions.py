"""Domain exceptions for the coordinate cache subsystem"""


class LocationSyncError(Exception):
    """Base class for all location sync errors"""
    pass


class ValidationError(LocationSyncError):
    """Rejected input, raised before anything is written"""
    pass


class CoordinateValidationError(ValidationError):
    """Latitude/longitude out of range, not finite, or only half set"""
    pass


class NotFoundError(LocationSyncError):
    """Unknown address, location entity or reconciliation run"""
    pass


class AddressReferenceError(LocationSyncError):
    """Active address pointer to a missing address, or delete of a referenced address"""
    pass


class ConcurrencyConflict(LocationSyncError):
    """Transaction aborted by a concurrent writer; nothing was applied, safe to retry"""
    pass


class SynchronizationError(LocationSyncError):
    """Cache synchronization could not complete; the triggering write is rolled back"""
    pass
