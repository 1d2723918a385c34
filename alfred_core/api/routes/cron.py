import hmac
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from alfred_core.api.container import get_health_monitor, get_platform_settings
from alfred_core.api.schemas.vm import HealthSweepResponse, HealthSweepSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.get("/health-check", response_model=HealthSweepResponse)
def health_check(
    authorization: Optional[str] = Header(default=None),
    settings=Depends(get_platform_settings),
    monitor=Depends(get_health_monitor),
):
    """One health sweep over every ready VM. Called by an external scheduler."""
    started = time.monotonic()

    if settings.cron_secret:
        token = (authorization or "").replace("Bearer ", "", 1)
        if not hmac.compare_digest(token.encode(), settings.cron_secret.encode()):
            logger.warning("Unauthorized health check attempt")
            raise HTTPException(status_code=401, detail="Unauthorized")
    else:
        logger.warning(
            "CRON_SECRET not set - health check endpoint is not protected. "
            "Set CRON_SECRET environment variable to secure this endpoint."
        )

    logger.info("Starting VM health check cron job...")

    summary = monitor.check_all_vms()
    duration = (time.monotonic() - started) * 1000

    return HealthSweepResponse(
        success=True,
        timestamp=datetime.now(timezone.utc).isoformat(),
        duration=duration,
        summary=HealthSweepSummary(
            total=summary.total,
            healthy=summary.healthy,
            unhealthy=summary.unhealthy,
            skipped=summary.skipped,
            errors=summary.errors,
            marked_as_error=summary.marked_as_error,
            message=summary.message,
        ),
        # Details only when something needs attention
        checks=summary.checks if (summary.unhealthy or summary.errors) else None,
    )
