"""Pydantic Schemas"""
from location_sync.schemas.address import AddressCreate, AddressUpdate, AddressResponse, AddressDeleteResponse
from location_sync.schemas.location_entity import (
    LocationEntityCreate,
    LocationEntityUpdate,
    LocationEntityResponse,
    ActiveAddressUpdate,
    EntityCoordinatesResponse
)
from location_sync.schemas.reconciliation import ReconciliationRunRequest, ReconciliationRunResponse

__all__ = [
    "AddressCreate",
    "AddressUpdate",
    "AddressResponse",
    "AddressDeleteResponse",
    "LocationEntityCreate",
    "LocationEntityUpdate",
    "LocationEntityResponse",
    "ActiveAddressUpdate",
    "EntityCoordinatesResponse",
    "ReconciliationRunRequest",
    "ReconciliationRunResponse",
]
