"""API router registry used by the app factory."""

from __future__ import annotations

from fastapi import APIRouter

from . import consent, health, ledger, protected, watermarks

API_PREFIX = "/api/v1"

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    ledger.router,
    watermarks.router,
    consent.router,
    protected.router,
)

__all__ = ["API_PREFIX", "API_ROUTERS"]
