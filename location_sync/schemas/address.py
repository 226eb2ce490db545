"""
Address Schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from location_sync.utils.datetime_utils import serialize_datetime_utc


class AddressBase(BaseModel):
    """Postal and geocoding fields of an address"""
    formatted_address: str = Field(..., min_length=1, description="Full address as returned by the geocoder")
    google_place_id: Optional[str] = Field(None, max_length=255)
    street_number: Optional[str] = Field(None, max_length=50)
    route: Optional[str] = Field(None, max_length=255)
    subpremise: Optional[str] = Field(None, max_length=100)
    barangay: Optional[str] = Field(None, max_length=255)
    locality: Optional[str] = Field(None, max_length=255)
    administrative_area_level_2: Optional[str] = Field(None, max_length=255)
    administrative_area_level_1: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field("Philippines", max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Longitude in decimal degrees")
    coordinate_source: Optional[str] = Field("GOOGLE_GEOCODING", max_length=30)
    geocoding_accuracy: Optional[str] = Field(None, max_length=30)
    address_type: str = Field("home", max_length=20)
    is_default: bool = False
    is_verified: bool = False
    notes: Optional[str] = None


class AddressCreate(AddressBase):
    """Schema for creating an address"""
    user_id: int = Field(..., description="Owning user")


class AddressUpdate(BaseModel):
    """Schema for updating an address; explicit nulls clear the coordinates"""
    formatted_address: Optional[str] = Field(None, min_length=1)
    google_place_id: Optional[str] = Field(None, max_length=255)
    street_number: Optional[str] = Field(None, max_length=50)
    route: Optional[str] = Field(None, max_length=255)
    subpremise: Optional[str] = Field(None, max_length=100)
    barangay: Optional[str] = Field(None, max_length=255)
    locality: Optional[str] = Field(None, max_length=255)
    administrative_area_level_2: Optional[str] = Field(None, max_length=255)
    administrative_area_level_1: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    coordinate_source: Optional[str] = Field(None, max_length=30)
    geocoding_accuracy: Optional[str] = Field(None, max_length=30)
    address_type: Optional[str] = Field(None, max_length=20)
    is_default: Optional[bool] = None
    is_verified: Optional[bool] = None
    notes: Optional[str] = None


class AddressResponse(AddressBase):
    """Schema for address response"""
    id: int
    user_id: int
    coordinates: Optional[Dict[str, Any]] = None
    last_geocoded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        json_encoders = {datetime: serialize_datetime_utc}


class AddressDeleteResponse(BaseModel):
    """Result of deleting an address"""
    id: int
    detached_entities: int
