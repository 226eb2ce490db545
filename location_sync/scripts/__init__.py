"""Operational scripts"""
