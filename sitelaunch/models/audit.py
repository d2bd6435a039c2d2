"""Audit event model.

Logs significant actions (site creation, deploys, domain connections,
completion and disconnects) for the activity feed and debugging.
"""

import uuid

from sitelaunch.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_id = db.Column(db.String(128), nullable=True)  # None for scheduled runs
    actor_type = db.Column(
        db.String(20), default="system", nullable=False
    )  # user | system
    action = db.Column(db.String(255), nullable=False)  # e.g. "domain.connected"
    resource = db.Column(db.String(50), nullable=True)  # site | domain_connection
    resource_id = db.Column(db.String(64), nullable=True, index=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid Python builtin clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
