"""
Pydantic schemas for the HTTP and realtime wire formats.
"""
