from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class Webhook(db.Model):
    """
    Merchant-configured HTTP endpoint that receives signed event envelopes.

    success_count / failure_count are monotonic: incremented in SQL on every
    delivery attempt and never reset or decremented.
    """
    __tablename__ = "webhooks"
    __table_args__ = (
        db.Index("ix_webhooks_merchant_active", "merchant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    url = db.Column(db.String(2048), nullable=False)
    secret = db.Column(db.String(128), nullable=False)
    events = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    last_triggered = db.Column(db.DateTime(timezone=True), nullable=True)
    success_count = db.Column(db.Integer, nullable=False, default=0)
    failure_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("webhooks", lazy=True))

    def subscribes_to(self, event: str) -> bool:
        return event in (self.events or [])

    def to_dict(self, *, include_secret: bool = False) -> dict:
        data = {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "url": self.url,
            "events": list(self.events or []),
            "is_active": self.is_active,
            "last_triggered": to_utc_z(self.last_triggered),
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_secret:
            data["secret"] = self.secret
        return data


class WebhookLog(db.Model):
    """
    Delivery audit for a webhook.

    IMMUTABLE: append-only, one row per delivery attempt.
    """
    __tablename__ = "webhook_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    webhook_id = db.Column(db.Integer, db.ForeignKey("webhooks.id"), nullable=False, index=True)
    event = db.Column(db.String(64), nullable=False)
    status_code = db.Column(db.Integer, nullable=True)
    response = db.Column(db.Text, nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    webhook = db.relationship("Webhook", backref=db.backref("logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "webhook_id": self.webhook_id,
            "event": self.event,
            "status_code": self.status_code,
            "response": self.response,
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
        }
