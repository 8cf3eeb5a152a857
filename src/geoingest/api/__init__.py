"""
HTTP API for uploading files and managing layers.
"""
