"""Address Model - canonical geocoded record owned by a user"""
from sqlalchemy import Column, Integer, Float, String, Text, Boolean, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from location_sync.database import Base
from location_sync.utils.datetime_utils import utcnow


class Address(Base):
    """User address with geocoded coordinates (source of truth for location caches)"""
    __tablename__ = "address"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    # Postal fields as returned by the geocoder
    formatted_address = Column(Text, nullable=False)
    google_place_id = Column(String(255), index=True)
    street_number = Column(String(50))
    route = Column(String(255))
    subpremise = Column(String(100))
    barangay = Column(String(255))  # sublocality_level_1
    locality = Column(String(255))
    administrative_area_level_2 = Column(String(255))
    administrative_area_level_1 = Column(String(255))
    country = Column(String(100), default="Philippines")
    postal_code = Column(String(20), index=True)

    # Geolocation
    latitude = Column(Float)
    longitude = Column(Float)
    coordinates = Column(JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql"))  # Derived from latitude/longitude, read-only
    coordinate_source = Column(String(30), default="GOOGLE_GEOCODING")  # GPS, GOOGLE_GEOCODING, MANUAL, ESTIMATED
    geocoding_accuracy = Column(String(30))  # ROOFTOP, RANGE_INTERPOLATED, GEOMETRIC_CENTER, APPROXIMATE
    last_geocoded_at = Column(DateTime(timezone=True))

    address_type = Column(String(20), nullable=False, default="home")  # home, work, billing, shipping, pickup, delivery
    is_default = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_address_lat_lng', 'latitude', 'longitude'),
        Index('idx_address_locality', 'locality', 'administrative_area_level_1'),
    )
