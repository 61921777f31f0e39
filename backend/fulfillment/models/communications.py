from __future__ import annotations

from ..extensions import db
from fulfillment.time_utils import to_utc_z


class Notification(db.Model):
    """
    In-app notification.

    target_type is authoritative for how the row is addressed:
    - USER:   recipient_id is the reader
    - ROLE:   produced by a role fan-out; recipient_id is the reader and
              recipient_role records which role the batch targeted
    - GLOBAL: is_global is True and the single row is visible to everyone

    Mutated only to flip is_read/read_at. Read rows older than the retention
    window are purged by maintenance; unread rows are never purged.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        db.Index("ix_notifications_global_read", "is_global", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    priority = db.Column(db.String(16), nullable=False, default="MEDIUM")  # LOW, MEDIUM, HIGH, URGENT

    target_type = db.Column(db.String(16), nullable=False)  # USER, ROLE, GLOBAL
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    recipient_role = db.Column(db.String(32), nullable=True)
    is_global = db.Column(db.Boolean, nullable=False, default=False)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # "metadata" is reserved on declarative models
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "priority": self.priority,
            "target_type": self.target_type,
            "recipient_id": self.recipient_id,
            "recipient_role": self.recipient_role,
            "is_global": self.is_global,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "metadata": self.meta or {},
            "created_at": to_utc_z(self.created_at),
        }
