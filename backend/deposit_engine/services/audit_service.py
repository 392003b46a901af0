# Overview: Append-only audit trail for deposit engine operations.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow
"""
Audit Invariants (authoritative)

- Append-only: no updates/deletes of existing events.
- No domain/business logic here.
- Events are written inside the same DB transaction as the change they record.
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    deposit_order_id: int | None = None,
    sale_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | None = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        deposit_order_id=deposit_order_id,
        sale_id=sale_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(*, deposit_order_id: int | None = None, event_type: str | None = None) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if deposit_order_id is not None:
        q = q.filter(AuditEvent.deposit_order_id == deposit_order_id)
    if event_type is not None:
        q = q.filter(AuditEvent.event_type == event_type)
    return q.order_by(AuditEvent.id).all()
