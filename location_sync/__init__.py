"""Location Sync Service - address coordinate cache synchronization"""
__version__ = "1.0.0"
