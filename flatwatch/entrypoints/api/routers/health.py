# flatwatch/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_settings, require_api_key
from ....config import Settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    """
    Reads the *running server's* settings, not your shell's. Secrets are redacted.
    """
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "SOURCE_KIND": settings.SOURCE_KIND,
        "FLATWATCH_DB_URL": settings.FLATWATCH_DB_URL,
        "PIK_API_BASE": settings.PIK_API_BASE,
        "PIK_SITE_URL": settings.PIK_SITE_URL,
        "INGEST_BATCHED": settings.INGEST_BATCHED,
        "HTTP_REQUEST_DELAY_S": settings.HTTP_REQUEST_DELAY_S,
        "EMAIL_ENABLED": settings.EMAIL_ENABLED,
        "EMAIL_DEFAULT_TO": settings.EMAIL_DEFAULT_TO,
        "SMTP_HOST": settings.SMTP_HOST,
        "SMTP_USERNAME": _redact(settings.SMTP_USERNAME),
        "SMTP_PASSWORD": "***" if settings.SMTP_PASSWORD else None,
        "API_KEY_SET": bool(settings.API_KEY),
    }
