"""Health check route handler.

``GET /api/health`` is a liveness probe: it performs no I/O and always
answers ``200`` while the process can serve requests.
"""

from __future__ import annotations

from fastapi import APIRouter

from pharos_pipeline import __version__

router = APIRouter(tags=["system"])


@router.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}
