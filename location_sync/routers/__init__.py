"""API Routers"""
from location_sync.routers import addresses, location_entities, reconciliation

__all__ = ["addresses", "location_entities", "reconciliation"]
