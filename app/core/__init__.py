"""
Core module - Shared exceptions, schemas and time helpers.
"""
