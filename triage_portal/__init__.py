"""
Entry point for the triage portal package.

This module exposes the main FastAPI application instance `api_application`
so it can be imported and run by an ASGI server or other entry scripts.
"""
from .main import api_application

__all__ = ["api_application"]
