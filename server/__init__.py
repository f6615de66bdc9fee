"""FastAPI application serving Katana vault APR data."""

from .app import create_app

__all__ = ["create_app"]
