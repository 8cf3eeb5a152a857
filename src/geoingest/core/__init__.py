"""
Core ingestion services.
"""
