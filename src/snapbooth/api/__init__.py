"""
API module for SnapBooth.

Provides:
- FastAPI server for the booth front end
- REST endpoints for frames, capture, strip download and upload
"""

from .server import create_app, set_components, start_server

__all__ = ["create_app", "set_components", "start_server"]
