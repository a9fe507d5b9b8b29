"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Attempt store / contact database (only when database-backed)
    • Push-token Redis (only when Redis-backed)
    • Channel provider configuration (credentials present for live providers)
    • In-flight background deliveries

Returns a structured health report suitable for Kubernetes
liveness/readiness probes and load balancer health checks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from backend.app.core.config import Settings, settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


def _uses_database(cfg: Settings) -> bool:
    return cfg.ATTEMPT_STORE_BACKEND == "database" or cfg.CONTACT_BACKEND == "database"


async def check_database(cfg: Settings) -> ComponentHealth:
    """Run ``SELECT 1`` against the configured database."""
    from backend.app.core.database import get_engine

    comp = ComponentHealth(name="database")
    start = time.monotonic()
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        comp.message = "Connection pool available"
        comp.details = {"url": cfg.DATABASE_URL.split("@")[-1]}
    except Exception as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_redis(cfg: Settings) -> ComponentHealth:
    """PING the push-token Redis."""
    from backend.app.core.redis_client import ping_redis

    comp = ComponentHealth(name="redis")
    start = time.monotonic()
    try:
        await ping_redis()
        comp.message = "Token store available"
    except Exception as e:
        # Push falls back to the contact's embedded token, so Redis is not fatal
        comp.status = HealthStatus.DEGRADED
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_providers(cfg: Settings) -> ComponentHealth:
    """Flag live providers that are missing credentials."""
    comp = ComponentHealth(name="channel_providers")
    missing = []
    if cfg.EMAIL_PROVIDER == "sendgrid" and not cfg.SENDGRID_API_KEY:
        missing.append("SENDGRID_API_KEY")
    if cfg.SMS_PROVIDER == "termii" and not cfg.TERMII_API_KEY:
        missing.append("TERMII_API_KEY")
    if cfg.PUSH_PROVIDER == "fcm" and not (cfg.FCM_PROJECT_ID and cfg.FCM_ACCESS_TOKEN):
        missing.append("FCM_PROJECT_ID/FCM_ACCESS_TOKEN")

    comp.details = {
        "email": cfg.EMAIL_PROVIDER,
        "sms": cfg.SMS_PROVIDER,
        "push": cfg.PUSH_PROVIDER,
    }
    if missing:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Missing credentials: {', '.join(missing)}"
        comp.details["missing"] = missing
    else:
        comp.message = "Providers configured"
    return comp


async def run_health_check(
    cfg: Optional[Settings] = None,
    *,
    pending_deliveries: int = 0,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    cfg = cfg or settings
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    if _uses_database(cfg):
        report.components.append(await check_database(cfg))
    if cfg.TOKEN_STORE_BACKEND == "redis":
        report.components.append(await check_redis(cfg))
    report.components.append(check_providers(cfg))
    report.components.append(
        ComponentHealth(
            name="dispatcher",
            message=f"{pending_deliveries} deliveries in flight",
            details={"pending_deliveries": pending_deliveries},
        )
    )

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
