"""Utilities"""
