"""Public stats read endpoint and the scheduled refresh trigger."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse

from .quiz_clock import today_key
from .services import QuizServices, get_services
from .stats_refresh import refresh_stats_cache

router = APIRouter(tags=["stats"])
logger = logging.getLogger(__name__)


@router.get("/stats")
def read_stats(
    date: Optional[str] = Query(default=None, description="Quiz date as YYYY-MM-DD; defaults to today."),
    services: QuizServices = Depends(get_services),
) -> JSONResponse:
    # Always 200: a bad date or an outage both read as "no data yet".
    tally = services.gateway.fetch_stats(date or today_key())
    return JSONResponse(
        content=tally.to_payload(),
        headers={
            "Cache-Control": f"public, max-age={services.settings.stats_cache_max_age}",
            "Access-Control-Allow-Origin": "*",
        },
    )


@router.post("/internal/stats/refresh")
def trigger_refresh(
    x_refresh_secret: Optional[str] = Header(default=None),
    services: QuizServices = Depends(get_services),
) -> Dict[str, Any]:
    expected = services.settings.refresh_secret
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stats refresh trigger is not configured.",
        )
    if not x_refresh_secret or not hmac.compare_digest(x_refresh_secret, expected):
        logger.warning("Rejected stats refresh trigger with a bad secret")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid refresh secret.")
    report = refresh_stats_cache(services.counter_store, services.stats_cache)
    return {"refreshed": report.refreshed, "failed": report.failed}


__all__ = ["router"]
