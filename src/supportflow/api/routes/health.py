"""Health check endpoints. /ready reports the pipeline-health signal."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
def ready(request: Request) -> JSONResponse:
    state = request.app.state.pipeline.health()
    status_code = 200 if state.status == "ok" else 503
    return JSONResponse(state.model_dump(mode="json"), status_code=status_code)
