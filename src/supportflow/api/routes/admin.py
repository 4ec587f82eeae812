"""Operator endpoints: queue statistics and manual sweeps."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from supportflow.core.exceptions import BrokerUnavailable

router = APIRouter(tags=["admin"])


@router.get("/queues")
def queue_stats(request: Request) -> dict:
    """Return waiting/active/completed/failed counts per stage."""
    try:
        return {"queues": request.app.state.pipeline.queue_stats()}
    except BrokerUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/escalations/sweep")
def run_escalation_sweep(request: Request) -> dict:
    """Run one escalation sweep now and return the escalated record ids."""
    escalated = request.app.state.pipeline.run_escalation_sweep()
    return {"escalated": escalated, "count": len(escalated)}
