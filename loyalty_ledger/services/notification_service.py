"""
Customer notifications through a transactional outbox.

Ledger mutations call ``enqueue_notification`` inside their own DB
transaction, so the "message owed" fact commits with the change it
describes. ``dispatch_pending_notifications`` delivers later and never
touches ledger state; a delivery failure is logged and retried.
"""
import logging
from datetime import datetime
from typing import Protocol

import httpx
from sqlalchemy.orm import Session

from loyalty_ledger.config import settings
from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import NotificationDeliveryError
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.notification_outbox import NotificationOutbox
from loyalty_ledger.models.tenant import Tenant


logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    def send(self, phone_number: str, message: str) -> None:
        ...


class WhatsAppCloudGateway:
    """Sends plain text messages through the WhatsApp Business Cloud API."""

    def __init__(
        self,
        *,
        api_url: str,
        phone_number_id: str,
        access_token: str,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self._url = f"{api_url.rstrip('/')}/{phone_number_id}/messages"
        self._token = access_token
        self._client = http_client or httpx.Client(timeout=timeout)

    def send(self, phone_number: str, message: str) -> None:
        payload = {
            "messaging_product": "whatsapp",
            "to": phone_number.lstrip("+"),
            "type": "text",
            "text": {"body": message},
        }
        try:
            response = self._client.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(f"WhatsApp request failed: {exc}") from exc

        if response.status_code >= 400:
            raise NotificationDeliveryError(
                f"WhatsApp API returned {response.status_code}: {response.text[:500]}"
            )


def build_default_gateway() -> NotificationGateway | None:
    if not (settings.whatsapp_api_url and settings.whatsapp_phone_number_id and settings.whatsapp_access_token):
        return None
    return WhatsAppCloudGateway(
        api_url=settings.whatsapp_api_url,
        phone_number_id=settings.whatsapp_phone_number_id,
        access_token=settings.whatsapp_access_token,
    )


# ============================================================
# ENQUEUE
# ============================================================

def enqueue_notification(
    db: Session,
    *,
    tenant: Tenant,
    customer: Customer,
    kind: str,
    message: str,
    respect_notify_purchase: bool = False,
) -> NotificationOutbox | None:
    if not customer.opted_in or not customer.phone_number:
        return None
    if respect_notify_purchase and (tenant.settings or {}).get("notify_purchase", True) is False:
        logger.info(
            "notification skipped: tenant disabled purchase notifications",
            extra={"tenant_id": str(tenant.id), "kind": kind},
        )
        return None

    signed = f"{message}\n\n- {tenant.business_name}"
    row = NotificationOutbox(
        tenant_id=tenant.id,
        customer_id=customer.id,
        phone_number=customer.phone_number,
        kind=kind,
        message=signed,
        status="pending",
        attempts=0,
    )
    db.add(row)
    db.flush()
    return row


# ============================================================
# DISPATCH
# ============================================================

def dispatch_pending_notifications(
    db: Session,
    gateway: NotificationGateway | None,
    *,
    batch_size: int | None = None,
    max_attempts: int | None = None,
    now: datetime | None = None,
) -> dict:
    if batch_size is None:
        batch_size = settings.notification_batch_size
    if max_attempts is None:
        max_attempts = settings.notification_max_attempts
    if now is None:
        now = utcnow()

    stats = {"sent": 0, "failed": 0, "retrying": 0}
    if gateway is None:
        logger.debug("no notification gateway configured; outbox left pending")
        return stats

    rows = (
        db.query(NotificationOutbox)
        .filter(NotificationOutbox.status == "pending")
        .order_by(NotificationOutbox.created_at.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )

    for row in rows:
        row.attempts = (row.attempts or 0) + 1
        error = None
        try:
            gateway.send(row.phone_number, row.message)
        except NotificationDeliveryError as exc:
            error = exc.message
        except Exception as exc:
            # any gateway error counts as a failed attempt for this row only
            logger.exception("notification gateway raised", extra={"notification_id": str(row.id)})
            error = f"{type(exc).__name__}: {exc}"

        if error is not None:
            row.last_error = error[:2000]
            if row.attempts >= max_attempts:
                row.status = "failed"
                stats["failed"] += 1
            else:
                stats["retrying"] += 1
            logger.warning(
                "notification delivery failed",
                extra={"notification_id": str(row.id), "kind": row.kind, "attempts": row.attempts, "error": row.last_error},
            )
            continue

        row.status = "sent"
        row.sent_at = now
        row.last_error = None
        stats["sent"] += 1

    db.flush()
    if rows:
        logger.info("notification dispatch finished", extra=stats)
    return stats
