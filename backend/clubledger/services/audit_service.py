# Overview: Service-layer operations for the audit trail.
"""
Audit trail invariants

- Append-only: no updates or deletes of existing rows.
- Written inside the same DB transaction as the change it records, so an
  audit row exists exactly when its change committed.
- No business logic reads it.
"""
from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import AuditLog


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def diff(before: dict, after: dict) -> dict:
    """{field: {"before": x, "after": y}} for the fields that changed."""
    changes = {}
    for key in sorted(set(before) | set(after)):
        if before.get(key) != after.get(key):
            changes[key] = {"before": before.get(key), "after": after.get(key)}
    return changes


def record(
    *,
    action: str,
    entity_type: str,
    entity_id,
    user_id: int | None = None,
    changes: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        changes=_jsonable(changes) if changes is not None else None,
    )
    db.session.add(entry)
    return entry


def list_entries(
    *,
    entity_type: str | None = None,
    entity_id=None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.id.desc()).limit(max(1, min(limit, 500))).all()
