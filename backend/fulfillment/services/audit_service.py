# Overview: Service-layer operations for the audit trail.

"""
Audit Log Service

Every state change worth answering "who did that?" for is written here:
order status updates, order splits, order creation, webhook management and
merchant deletion. Rows are append-only.

Callers that treat auditing as best-effort wrap log_action in
side_effects.run_side_effect so a failed audit write never fails the
primary mutation.
"""

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog


def log_action(
    *,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | str | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    commit: bool = True,
) -> AuditLog:
    ip_address = request.remote_addr if has_request_context() else None

    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        old_values=old_values,
        new_values=new_values,
        ip_address=ip_address,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry
