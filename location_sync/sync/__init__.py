"""Coordinate cache synchronization"""
