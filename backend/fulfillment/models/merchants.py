from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class Merchant(db.Model):
    """
    Multi-tenant root: every tenant is a Merchant.

    All users, products, orders, subscriptions, billing records, API keys and
    webhooks belong to exactly one merchant. Deleting a merchant is a hard
    cascade across all of them (see services/merchant_service.py).
    """
    __tablename__ = "merchants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_name = db.Column(db.String(255), nullable=False)
    business_email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    business_phone = db.Column(db.String(32), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)

    onboarding_status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, SUSPENDED

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Merchant id={self.id} business_name={self.business_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "business_email": self.business_email,
            "business_phone": self.business_phone,
            "contact_person": self.contact_person,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "onboarding_status": self.onboarding_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "business_email": self.business_email,
            "business_phone": self.business_phone,
        }


class Warehouse(db.Model):
    """
    Fulfilment location. Platform-owned when merchant_id is NULL.
    """
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "is_active": self.is_active,
        }


class ApiKey(db.Model):
    """Merchant API credential. Only the SHA-256 of the key is stored."""
    __tablename__ = "api_keys"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    key_hash = db.Column(db.String(64), nullable=False, unique=True)
    key_prefix = db.Column(db.String(16), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "key_prefix": self.key_prefix,
            "is_active": self.is_active,
            "last_used_at": to_utc_z(self.last_used_at),
            "created_at": to_utc_z(self.created_at),
        }


class ApiKeyLog(db.Model):
    """Append-only request log for an API key."""
    __tablename__ = "api_key_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    api_key_id = db.Column(db.Integer, db.ForeignKey("api_keys.id"), nullable=False, index=True)
    endpoint = db.Column(db.String(255), nullable=False)
    method = db.Column(db.String(8), nullable=False)
    status_code = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
