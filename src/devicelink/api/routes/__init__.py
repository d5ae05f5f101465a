"""API route modules."""

from devicelink.api.routes.device import router as device_router

__all__ = ["device_router"]
