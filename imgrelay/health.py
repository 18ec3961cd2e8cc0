"""Health endpoint for imgrelay.

  GET /health — liveness probe; always 200 ``{"status": "ok"}``.

Independent of the allowlist, of readiness, and of upstream reachability: it
answers whether the process is serving HTTP, nothing more.
"""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
