"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from devicelink.grants.service import DeviceGrantService


def get_grant_service(request: Request) -> DeviceGrantService:
    return request.app.state.grant_service
