"""Audit trail helpers.

Callers own the transaction: events are flushed here and committed with
the state change they describe.
"""

from sitelaunch.extensions import db
from sitelaunch.models.audit import AuditEvent


def log_audit(action, resource=None, resource_id=None, actor_id=None, metadata=None):
    """Record an audit event.

    Actor is None for system-initiated work (scheduled polls, retries).
    """
    event = AuditEvent(
        actor_id=actor_id,
        actor_type="user" if actor_id else "system",
        action=action,
        resource=resource,
        resource_id=resource_id,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event


def has_audit_event(action, resource_id):
    """Return True if *action* was already recorded for *resource_id*."""
    return (
        AuditEvent.query
        .filter_by(action=action, resource_id=resource_id)
        .first()
    ) is not None
