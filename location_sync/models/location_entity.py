"""Location Entity Model - business outlet with a denormalized coordinate cache"""
from sqlalchemy import Column, Integer, Float, String, Boolean, DateTime, ForeignKey, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB

from location_sync.database import Base
from location_sync.utils.datetime_utils import utcnow

# Columns written only by the synchronization engine
CACHE_FIELDS = (
    "cached_latitude",
    "cached_longitude",
    "cached_point",
    "cached_point_format",
    "is_location_verified",
    "last_location_sync",
)


class LocationEntity(Base):
    """Merchant outlet pointing at its current operating address"""
    __tablename__ = "location_entity"

    id = Column(Integer, primary_key=True, index=True)
    operator_id = Column(Integer, nullable=False, index=True)
    outlet_name = Column(String(255), nullable=False)
    outlet_code = Column(String(50), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Current operating location, possibly owned by another user
    active_address_id = Column(
        Integer, ForeignKey("address.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Coordinate cache read by proximity queries without joining address
    cached_latitude = Column(Float)
    cached_longitude = Column(Float)
    cached_point = Column(JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql"))
    cached_point_format = Column(String(10))  # Adapter name that wrote cached_point
    is_location_verified = Column(Boolean, nullable=False, default=False)
    last_location_sync = Column(DateTime(timezone=True))
    # Note: a PostGIS geom column, where deployed, is maintained by a trigger from cached_latitude/longitude

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_location_entity_cache', 'cached_latitude', 'cached_longitude'),
    )
