"""FastAPI REST API for device pairing."""

from devicelink.api.app import create_api_app

__all__ = ["create_api_app"]
