"""Client site model.

One hosting destination for one business's generated website. The id is
the hosting provider's site id, derived from (business name, lead id), so
the primary key doubles as the idempotency guard for provisioning.
"""

from sitelaunch.extensions import db


class ClientSite(db.Model):
    __tablename__ = "client_sites"

    STATUSES = ["creating", "deploying", "active", "domain_pending", "error"]

    id = db.Column(db.String(30), primary_key=True)  # provider site id
    agency_id = db.Column(db.String(128), nullable=False, index=True)
    lead_id = db.Column(db.String(128), nullable=False, index=True)
    user_id = db.Column(db.String(128), nullable=True)
    business_name = db.Column(db.String(255), nullable=False)
    site_type = db.Column(db.String(30), default="production", nullable=False)
    default_url = db.Column(db.String(500), nullable=False)  # https://{id}.web.app
    status = db.Column(
        db.String(30), default="creating", nullable=False
    )  # creating | deploying | active | domain_pending | error

    # --- Release pointers (only move on a successful deploy) ---
    last_deployed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_version_id = db.Column(db.String(255), nullable=True)
    current_release_id = db.Column(db.String(255), nullable=True)

    # --- Custom domain mirror ---
    custom_domain = db.Column(db.String(255), nullable=True)
    domain_connection_id = db.Column(db.String(64), nullable=True)
    domain_connection_status = db.Column(db.String(30), nullable=True)
    ssl_status = db.Column(db.String(40), nullable=True)  # raw provider cert state

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    releases = db.relationship(
        "SiteRelease", back_populates="site", lazy="dynamic",
        order_by="SiteRelease.created_at",
    )
    domain_connections = db.relationship(
        "DomainConnection", back_populates="site", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "site_id": self.id,
            "agency_id": self.agency_id,
            "lead_id": self.lead_id,
            "user_id": self.user_id,
            "business_name": self.business_name,
            "site_type": self.site_type,
            "default_url": self.default_url,
            "status": self.status,
            "last_deployed_at": (
                self.last_deployed_at.isoformat() if self.last_deployed_at else None
            ),
            "current_version_id": self.current_version_id,
            "current_release_id": self.current_release_id,
            "custom_domain": self.custom_domain,
            "domain_connection_id": self.domain_connection_id,
            "domain_connection_status": self.domain_connection_status,
            "ssl_status": self.ssl_status,
        }

    def __repr__(self):
        return f"<ClientSite {self.id} ({self.status})>"
