"""
Tests for the notification outbox and the WhatsApp Cloud gateway.
"""
import json

import httpx
import pytest

from loyalty_ledger.errors import NotificationDeliveryError
from loyalty_ledger.models.notification_outbox import NotificationOutbox
from loyalty_ledger.services.notification_service import (
    WhatsAppCloudGateway,
    dispatch_pending_notifications,
    enqueue_notification,
)
from loyalty_ledger.services.purchase_service import log_purchase
from loyalty_ledger.services.tenant_service import update_settings


class FakeGateway:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, phone_number, message):
        if self.fail:
            raise NotificationDeliveryError("gateway down")
        self.sent.append((phone_number, message))


class TestEnqueue:
    def test_message_is_signed_with_business_name(self, db, tenant, customer):
        row = enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="Hello")
        assert row.status == "pending"
        assert row.message == "Hello\n\n- Mama Titi Kitchen"

    def test_opted_out_customer_gets_nothing(self, db, tenant, make_customer):
        quiet = make_customer(opted_in=False)
        assert enqueue_notification(db, tenant=tenant, customer=quiet, kind="test", message="Hi") is None

    def test_purchase_notifications_can_be_disabled(self, db, tenant, customer, now):
        db.query(NotificationOutbox).delete()
        update_settings(db, tenant, changes={"notify_purchase": False})
        log_purchase(db, tenant, customer, amount_minor=300000, now=now)
        db.commit()

        assert db.query(NotificationOutbox).filter_by(kind="purchase_logged").count() == 0


class FlakyGateway:
    """Raises a non-delivery error for one phone number."""

    def __init__(self, bad_number):
        self.bad_number = bad_number
        self.sent = []

    def send(self, phone_number, message):
        if phone_number == self.bad_number:
            raise KeyError("messages")
        self.sent.append(phone_number)


class TestDispatch:
    def test_pending_rows_are_sent(self, db, tenant, customer, now):
        db.query(NotificationOutbox).delete()
        enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="One")
        enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="Two")
        gateway = FakeGateway()

        stats = dispatch_pending_notifications(db, gateway, now=now)

        assert stats == {"sent": 2, "failed": 0, "retrying": 0}
        assert len(gateway.sent) == 2
        assert db.query(NotificationOutbox).filter_by(status="sent").count() == 2

    def test_failures_retry_then_fail(self, db, tenant, customer, now):
        db.query(NotificationOutbox).delete()
        row = enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="Hi")
        gateway = FakeGateway(fail=True)

        first = dispatch_pending_notifications(db, gateway, max_attempts=2, now=now)
        second = dispatch_pending_notifications(db, gateway, max_attempts=2, now=now)

        assert first["retrying"] == 1
        assert second["failed"] == 1
        assert row.status == "failed"
        assert row.attempts == 2
        assert row.last_error == "gateway down"

    def test_unexpected_gateway_error_does_not_abort_batch(self, db, tenant, customer, make_customer, now):
        other = make_customer(first_name="Bisi")
        db.query(NotificationOutbox).delete()
        bad = enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="One")
        good = enqueue_notification(db, tenant=tenant, customer=other, kind="test", message="Two")
        gateway = FlakyGateway(customer.phone_number)

        stats = dispatch_pending_notifications(db, gateway, now=now)

        assert stats == {"sent": 1, "failed": 0, "retrying": 1}
        assert good.status == "sent"
        assert bad.status == "pending"
        assert bad.attempts == 1
        assert bad.last_error.startswith("KeyError")

    def test_no_gateway_leaves_rows_pending(self, db, tenant, customer, now):
        row = enqueue_notification(db, tenant=tenant, customer=customer, kind="test", message="Hi")
        assert dispatch_pending_notifications(db, None, now=now) == {"sent": 0, "failed": 0, "retrying": 0}
        assert row.status == "pending"


class TestWhatsAppCloudGateway:
    def test_posts_text_message(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        gateway = WhatsAppCloudGateway(
            api_url="https://graph.facebook.com/v19.0/",
            phone_number_id="12345",
            access_token="token-abc",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        gateway.send("+2348012345678", "Hello")

        assert seen["url"] == "https://graph.facebook.com/v19.0/12345/messages"
        assert seen["auth"] == "Bearer token-abc"
        assert seen["body"]["to"] == "2348012345678"
        assert seen["body"]["text"] == {"body": "Hello"}

    def test_error_status_raises(self):
        gateway = WhatsAppCloudGateway(
            api_url="https://graph.facebook.com/v19.0",
            phone_number_id="12345",
            access_token="token-abc",
            http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401, text="bad token"))),
        )
        with pytest.raises(NotificationDeliveryError):
            gateway.send("+2348012345678", "Hello")
