from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime

from croniter import croniter

from loyalty_ledger.config import settings
from loyalty_ledger.db import SessionLocal, utcnow
from loyalty_ledger.services.claim_service import expire_claims
from loyalty_ledger.services.notification_service import (
    NotificationGateway,
    build_default_gateway,
    dispatch_pending_notifications,
)
from loyalty_ledger.services.points_expiry_service import expire_points
from loyalty_ledger.services.redemption_service import expire_redemptions


logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    redemptions_expired: int = 0
    claims_expired: int = 0
    points_expired: int = 0
    notifications: dict = field(default_factory=dict)
    failed_steps: list = field(default_factory=list)


def compute_next_run_at(*, base_utc: datetime, cron_expr: str) -> datetime:
    it = croniter(cron_expr, base_utc)
    return it.get_next(datetime)


def run_sweep_once(
    session_factory=SessionLocal,
    *,
    gateway: NotificationGateway | None = None,
    now: datetime | None = None,
) -> SweepStats:
    """
    One expiry pass. Each step runs in its own session and is committed on
    its own, so a failing step never undoes the previous ones.
    """
    if now is None:
        now = utcnow()
    stats = SweepStats()

    steps = (
        ("expire_redemptions", lambda db: expire_redemptions(db, now=now)),
        ("expire_claims", lambda db: expire_claims(db, now=now)),
        ("expire_points", lambda db: expire_points(db, now=now)),
        ("dispatch_notifications", lambda db: dispatch_pending_notifications(db, gateway, now=now)),
    )

    for name, step in steps:
        db = session_factory()
        try:
            result = step(db)
            db.commit()
        except Exception:
            db.rollback()
            stats.failed_steps.append(name)
            logger.exception("expiry sweep step failed", extra={"step": name, "now": now.isoformat()})
            continue
        finally:
            db.close()

        if name == "expire_redemptions":
            stats.redemptions_expired = result
        elif name == "expire_claims":
            stats.claims_expired = result
        elif name == "expire_points":
            stats.points_expired = result
        else:
            stats.notifications = result

    logger.info(
        "expiry sweep finished",
        extra={
            "redemptions_expired": stats.redemptions_expired,
            "claims_expired": stats.claims_expired,
            "points_expired": stats.points_expired,
            "notifications": stats.notifications,
            "failed_steps": stats.failed_steps,
        },
    )
    return stats


def run_worker_loop(*, cron_expr: str | None = None, max_sleep_seconds: int = 60):
    cron_expr = cron_expr or settings.expiry_sweep_cron
    if not croniter.is_valid(cron_expr):
        raise ValueError(f"Invalid EXPIRY_SWEEP_CRON expression: {cron_expr!r}")

    gateway = build_default_gateway()
    next_run_at = utcnow()

    logger.info(
        "expiry worker started",
        extra={"cron": cron_expr, "gateway": type(gateway).__name__ if gateway else None},
    )

    while True:
        now = utcnow()
        if now < next_run_at:
            sleep_for = min(max_sleep_seconds, max(1, int((next_run_at - now).total_seconds())))
            logger.debug("expiry worker sleeping", extra={"sleep_for_seconds": sleep_for})
            time.sleep(sleep_for)
            continue

        run_sweep_once(gateway=gateway, now=now)
        next_run_at = compute_next_run_at(base_utc=now, cron_expr=cron_expr)


def main():
    logging.basicConfig(level=settings.log_level)
    max_sleep_seconds = int(os.getenv("EXPIRY_WORKER_MAX_SLEEP_SECONDS") or "60")
    run_worker_loop(max_sleep_seconds=max_sleep_seconds)


if __name__ == "__main__":
    main()
