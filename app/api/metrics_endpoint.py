"""
Prometheus scrape target.

The scheduling registry and the booking wizard registry are exported
together so one scrape job covers the whole service.
"""

from fastapi import APIRouter, Response

from app.fsm.metrics import get_metrics as get_wizard_metrics, wizard_registry
from app.observability.metrics import get_metrics, get_metrics_summary, summarize_registry

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def prometheus_metrics():
    scheduling, content_type = get_metrics()
    return Response(content=scheduling + b"\n" + get_wizard_metrics(), media_type=content_type)


@router.get("/metrics/summary")
async def metrics_summary():
    """Counter totals per registry, handy for smoke checks."""
    return {
        "scheduling": get_metrics_summary(),
        "booking_wizard": summarize_registry(wizard_registry),
    }
