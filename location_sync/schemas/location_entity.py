"""
Location Entity Schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from location_sync.utils.datetime_utils import serialize_datetime_utc


class LocationEntityCreate(BaseModel):
    """Schema for creating a location entity"""
    operator_id: int = Field(..., description="Operating user")
    outlet_name: str = Field(..., min_length=1, max_length=255)
    outlet_code: Optional[str] = Field(None, min_length=1, max_length=50, description="Generated when omitted")
    is_active: bool = True
    active_address_id: Optional[int] = Field(None, description="Current operating address")


class LocationEntityUpdate(BaseModel):
    """Schema for updating a location entity (cache fields are not accepted)"""
    operator_id: Optional[int] = None
    outlet_name: Optional[str] = Field(None, min_length=1, max_length=255)
    outlet_code: Optional[str] = Field(None, min_length=1, max_length=50)
    is_active: Optional[bool] = None
    active_address_id: Optional[int] = None

    class Config:
        extra = "forbid"


class ActiveAddressUpdate(BaseModel):
    """Point an entity at an address, or at nothing with null"""
    address_id: Optional[int] = Field(..., description="Address id, or null to detach")


class LocationEntityResponse(BaseModel):
    """Schema for location entity response, cache included"""
    id: int
    operator_id: int
    outlet_name: str
    outlet_code: str
    is_active: bool
    active_address_id: Optional[int] = None
    cached_latitude: Optional[float] = None
    cached_longitude: Optional[float] = None
    cached_point: Optional[Dict[str, Any]] = None
    cached_point_format: Optional[str] = None
    is_location_verified: bool = False
    last_location_sync: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_encoders = {datetime: serialize_datetime_utc}


class EntityCoordinatesResponse(BaseModel):
    """Cached coordinates of one entity, read without touching the address"""
    id: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    point: Optional[Dict[str, Any]] = None
    is_location_verified: bool = False
    last_location_sync: Optional[datetime] = None

    class Config:
        json_encoders = {datetime: serialize_datetime_utc}
