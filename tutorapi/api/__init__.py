"""
API module - FastAPI routes and HTTP handling.

This module handles:
- Request validation and parsing
- Response formatting
- Error handling
- Route definitions
"""
from tutorapi.api.main import app

__all__ = ["app"]
