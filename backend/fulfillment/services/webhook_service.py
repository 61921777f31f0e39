# Overview: Service-layer operations for outbound webhooks; signing, delivery and endpoint management.

"""
Webhook Dispatcher

Delivery:
- For (merchant, event), every active webhook of the merchant whose events
  list contains the event gets one POST of the envelope
  {event, data, timestamp, merchantId}.
- The envelope is serialized to JSON once; those exact bytes are signed
  (HMAC-SHA256, hex) and sent.
- Each attempt writes one WebhookLog row, sets last_triggered and bumps
  success_count (2xx) or failure_count (anything else, including transport
  errors) with an SQL-level increment. Counters are never reset.
- No retries. Each endpoint is attempted independently, and
  trigger_webhooks never raises to its caller.

Management: create / list / update / delete / regenerate_secret /
send_test_webhook. Creating a webhook requires the merchant to hold an
ACTIVE "API Access" service subscription.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
from flask import current_app

from ..extensions import db
from ..models import Webhook, WebhookLog, MerchantServiceSubscription, Service, User
from ..roles import WEBHOOK_MANAGE_ROLES, WEBHOOK_VIEW_ROLES
from ..errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from . import audit_service, tenant_service
from fulfillment.time_utils import utcnow, to_utc_z_millis


WEBHOOK_EVENTS = frozenset({
    # Order events
    "order.created",
    "order.updated",
    "order.status_changed",
    "order.delivered",
    "order.cancelled",
    # Product events
    "product.created",
    "product.updated",
    "product.deleted",
    # Inventory events
    "inventory.updated",
    "inventory.low_stock",
    "inventory.out_of_stock",
    # Payment events
    "payment.received",
    "payment.failed",
    # Return events
    "return.created",
    "return.processed",
})

TEST_EVENT = "test.webhook"

API_ACCESS_SERVICE = "API Access"

# Stored response bodies are truncated to this many characters
MAX_LOGGED_RESPONSE = 10_000


@dataclass
class DeliveryOutcome:
    webhook_id: int
    event: str
    ok: bool
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "webhook_id": self.webhook_id,
            "event": self.event,
            "ok": self.ok,
            "status_code": self.status_code,
            "error": self.error,
        }


# =============================================================================
# SIGNING
# =============================================================================

def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(payload: str | bytes, secret: str) -> str:
    """HMAC-SHA256 of the serialized payload, hex encoded."""
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: str | bytes, signature: str | None, secret: str) -> bool:
    """Constant-time check of a received X-Webhook-Signature header."""
    if not signature:
        return False
    expected = sign_payload(payload, secret).encode("ascii")
    return hmac.compare_digest(expected, signature.encode("utf-8", "surrogatepass"))


def serialize_envelope(event: str, data, merchant_id: int, timestamp: str) -> str:
    envelope = {
        "event": event,
        "data": data,
        "timestamp": timestamp,
        "merchantId": merchant_id,
    }
    return json.dumps(envelope, separators=(",", ":"), default=str)


# =============================================================================
# DELIVERY
# =============================================================================

def _record_attempt(
    webhook_id: int,
    event: str,
    *,
    ok: bool,
    status_code: int | None,
    response_text: str | None,
    error: str | None,
) -> None:
    db.session.add(WebhookLog(
        webhook_id=webhook_id,
        event=event,
        status_code=status_code,
        response=response_text,
        error=error,
    ))

    counter = Webhook.success_count if ok else Webhook.failure_count
    db.session.query(Webhook).filter(Webhook.id == webhook_id).update(
        {counter: counter + 1, Webhook.last_triggered: utcnow()},
        synchronize_session=False,
    )
    db.session.commit()


def deliver(webhook: Webhook, event: str, data) -> DeliveryOutcome:
    """
    POST one signed envelope to one endpoint and record the attempt.

    Transport errors are recorded as failures, not raised. Database errors
    while recording propagate.
    """
    cfg = current_app.config
    timestamp = to_utc_z_millis(utcnow())
    body = serialize_envelope(event, data, webhook.merchant_id, timestamp)

    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign_payload(body, webhook.secret),
        "X-Webhook-Event": event,
        "X-Webhook-Timestamp": timestamp,
        "User-Agent": cfg.get("WEBHOOK_USER_AGENT", "SJFulfillment-Webhook/1.0"),
    }

    webhook_id = webhook.id
    url = webhook.url
    status_code = None
    response_text = None
    error = None

    try:
        resp = httpx.post(
            url,
            content=body.encode("utf-8"),
            headers=headers,
            timeout=cfg.get("WEBHOOK_TIMEOUT_SECONDS", 30.0),
        )
        status_code = resp.status_code
        response_text = (resp.text or "")[:MAX_LOGGED_RESPONSE]
        ok = resp.is_success
        if not ok:
            error = f"HTTP {status_code}: {response_text}"
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        ok = False
        error = str(e) or e.__class__.__name__

    if ok:
        current_app.logger.info("Webhook %s delivered %s to %s (%s)", webhook_id, event, url, status_code)
    else:
        current_app.logger.warning("Webhook %s failed %s to %s: %s", webhook_id, event, url, error)

    _record_attempt(
        webhook_id,
        event,
        ok=ok,
        status_code=status_code,
        response_text=response_text,
        error=error,
    )
    return DeliveryOutcome(webhook_id=webhook_id, event=event, ok=ok, status_code=status_code, error=error)


def subscribed_webhooks(merchant_id: int, event: str) -> list[Webhook]:
    # JSON containment is not portable across backends; filter in Python.
    candidates = (
        db.session.query(Webhook)
        .filter(Webhook.merchant_id == merchant_id, Webhook.is_active.is_(True))
        .order_by(Webhook.id)
        .all()
    )
    return [w for w in candidates if w.subscribes_to(event)]


def trigger_webhooks(merchant_id: int, event: str, data) -> list[DeliveryOutcome]:
    """
    Fan an event out to every subscribed endpoint of the merchant.

    Never raises. Unknown events are logged and ignored.
    """
    if event not in WEBHOOK_EVENTS:
        current_app.logger.warning("Ignoring unknown webhook event %r for merchant %s", event, merchant_id)
        return []

    try:
        targets = [(w.id, w) for w in subscribed_webhooks(merchant_id, event)]
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load webhooks for merchant %s", merchant_id)
        return []

    outcomes: list[DeliveryOutcome] = []
    for webhook_id, webhook in targets:
        try:
            outcomes.append(deliver(webhook, event, data))
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Failed to record webhook %s delivery of %s", webhook_id, event)
            outcomes.append(DeliveryOutcome(webhook_id=webhook_id, event=event, ok=False, error=str(e)))
    return outcomes


# =============================================================================
# MANAGEMENT
# =============================================================================

def generate_secret() -> str:
    return secrets.token_hex(32)


def _validate_url(url) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("url is required")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("url must be an absolute http(s) URL")
    if len(url) > 2048:
        raise ValidationError("url exceeds max length 2048")
    return url


def _validate_events(events) -> list[str]:
    if not isinstance(events, list) or not events:
        raise ValidationError("events must be a non-empty list")
    invalid = sorted({e for e in events if e not in WEBHOOK_EVENTS}, key=str)
    if invalid:
        raise ValidationError(f"Invalid events: {', '.join(map(str, invalid))}")
    # Keep first-seen order, drop duplicates
    return list(dict.fromkeys(events))


def has_api_access(merchant_id: int) -> bool:
    return (
        db.session.query(MerchantServiceSubscription.id)
        .join(Service, Service.id == MerchantServiceSubscription.service_id)
        .filter(
            MerchantServiceSubscription.merchant_id == merchant_id,
            MerchantServiceSubscription.status == "ACTIVE",
            Service.name == API_ACCESS_SERVICE,
        )
        .first()
        is not None
    )


def _require_role(user: User, roles) -> None:
    if user.role not in roles:
        raise AuthorizationError("Insufficient role for webhook management")


def get_webhook(webhook_id: int, user: User) -> Webhook:
    _require_role(user, WEBHOOK_VIEW_ROLES)
    webhook = db.session.get(Webhook, webhook_id)
    if not webhook:
        raise NotFoundError("Webhook not found")
    tenant_service.require_merchant_access(user, webhook.merchant_id, not_found="Webhook not found")
    return webhook


def list_webhooks(user: User, merchant_id: int | None = None) -> list[Webhook]:
    _require_role(user, WEBHOOK_VIEW_ROLES)
    q = db.session.query(Webhook)
    if user.merchant_id is not None or merchant_id is not None:
        q = q.filter(Webhook.merchant_id == tenant_service.resolve_merchant_scope(user, merchant_id))
    return q.order_by(Webhook.created_at.desc(), Webhook.id.desc()).all()


def create_webhook(user: User, data: dict) -> Webhook:
    _require_role(user, WEBHOOK_MANAGE_ROLES)
    merchant_id = tenant_service.resolve_merchant_scope(user, data.get("merchant_id", data.get("merchantId")))

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 100:
        raise ValidationError("name exceeds max length 100")
    url = _validate_url(data.get("url"))
    events = _validate_events(data.get("events"))

    if not has_api_access(merchant_id):
        raise PreconditionError("API Access service subscription required")

    webhook = Webhook(
        merchant_id=merchant_id,
        name=name,
        url=url,
        secret=generate_secret(),
        events=events,
        is_active=True,
    )
    db.session.add(webhook)
    db.session.commit()

    audit_service.log_action(
        user_id=user.id,
        action="CREATE_WEBHOOK",
        entity_type="Webhook",
        entity_id=webhook.id,
        new_values={"name": name, "url": url, "events": events},
    )
    return webhook


def update_webhook(webhook_id: int, user: User, data: dict) -> Webhook:
    _require_role(user, WEBHOOK_MANAGE_ROLES)
    webhook = get_webhook(webhook_id, user)

    old_values = {"name": webhook.name, "url": webhook.url, "events": list(webhook.events or []), "is_active": webhook.is_active}

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        webhook.name = name
    if "url" in data:
        webhook.url = _validate_url(data.get("url"))
    if "events" in data:
        webhook.events = _validate_events(data.get("events"))
    active_key = "is_active" if "is_active" in data else "isActive"
    if active_key in data:
        if not isinstance(data[active_key], bool):
            raise ValidationError("is_active must be a boolean")
        webhook.is_active = data[active_key]

    db.session.commit()

    audit_service.log_action(
        user_id=user.id,
        action="UPDATE_WEBHOOK",
        entity_type="Webhook",
        entity_id=webhook.id,
        old_values=old_values,
        new_values={"name": webhook.name, "url": webhook.url, "events": list(webhook.events or []), "is_active": webhook.is_active},
    )
    return webhook


def delete_webhook(webhook_id: int, user: User) -> None:
    _require_role(user, WEBHOOK_MANAGE_ROLES)
    webhook = get_webhook(webhook_id, user)
    snapshot = {"name": webhook.name, "url": webhook.url, "merchant_id": webhook.merchant_id}

    db.session.query(WebhookLog).filter(WebhookLog.webhook_id == webhook.id).delete(synchronize_session=False)
    db.session.delete(webhook)
    db.session.commit()

    audit_service.log_action(
        user_id=user.id,
        action="DELETE_WEBHOOK",
        entity_type="Webhook",
        entity_id=webhook_id,
        old_values=snapshot,
    )


def regenerate_secret(webhook_id: int, user: User) -> Webhook:
    _require_role(user, WEBHOOK_MANAGE_ROLES)
    webhook = get_webhook(webhook_id, user)
    webhook.secret = generate_secret()
    db.session.commit()

    audit_service.log_action(
        user_id=user.id,
        action="REGENERATE_WEBHOOK_SECRET",
        entity_type="Webhook",
        entity_id=webhook.id,
    )
    return webhook


def send_test_webhook(webhook_id: int, user: User) -> DeliveryOutcome:
    """Deliver a test.webhook envelope to this one endpoint, active or not."""
    _require_role(user, WEBHOOK_MANAGE_ROLES)
    webhook = get_webhook(webhook_id, user)
    data = {
        "message": "This is a test webhook from SJ Fulfillment",
        "webhookId": webhook.id,
        "webhookName": webhook.name,
    }
    return deliver(webhook, TEST_EVENT, data)
