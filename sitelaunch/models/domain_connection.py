"""Domain connection model.

Tracks one attempt to bind a custom domain (or no domain, for a launch)
to a ClientSite. Created by the connection orchestrator; afterwards only
the reconciliation loop, DNS automation and disconnect move its status.
"""

from sitelaunch.extensions import db


class DomainConnection(db.Model):
    __tablename__ = "domain_connections"

    STATUSES = [
        "creating_site",
        "deploying_content",
        "adding_domain",
        "pending_dns",
        "dns_propagating",
        "pending_ssl",
        "ssl_provisioning",
        "connected",
        "error",
        "verification_failed",
        "disconnected",
    ]
    # A connection in one of these no longer holds its domain.
    INACTIVE_STATUSES = ["error", "verification_failed", "disconnected"]
    TERMINAL_STATUSES = ["connected", "error", "verification_failed", "disconnected"]
    METHODS = ["manual", "dns_provider", "launch"]

    # At most one active connection per domain, enforced by the database too.
    __table_args__ = (
        db.Index(
            "uq_domain_connections_active_domain",
            "domain",
            unique=True,
            sqlite_where=db.text(
                "status NOT IN ('error', 'verification_failed', 'disconnected')"
            ),
            postgresql_where=db.text(
                "status NOT IN ('error', 'verification_failed', 'disconnected')"
            ),
        ),
    )

    id = db.Column(db.String(64), primary_key=True)  # conn-... | launch-...
    domain = db.Column(db.String(255), nullable=True)
    site_id = db.Column(
        db.String(30), db.ForeignKey("client_sites.id"), nullable=True, index=True
    )
    agency_id = db.Column(db.String(128), nullable=False)
    lead_id = db.Column(db.String(128), nullable=False)
    user_id = db.Column(db.String(128), nullable=True)
    business_name = db.Column(db.String(255), nullable=True)
    connection_method = db.Column(
        db.String(20), default="manual", nullable=False
    )  # manual | dns_provider | launch
    status = db.Column(db.String(30), default="creating_site", nullable=False, index=True)

    # --- DNS instructions for the caller ---
    dns_records = db.Column(db.JSON, default=list)  # [{type, name, value, ttl, status}]

    # --- Remote provider state mirrors ---
    host_state = db.Column(db.String(40), nullable=True)
    ownership_status = db.Column(db.String(40), nullable=True)
    cert_state = db.Column(db.String(40), nullable=True)

    # --- Ownership proof ---
    verification_token = db.Column(db.String(64), nullable=True)
    verification_txt_record = db.Column(db.String(255), nullable=True)
    ownership_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- DNS automation ---
    dns_provider = db.Column(db.String(30), nullable=True)  # godaddy
    dns_configured_at = db.Column(db.DateTime(timezone=True), nullable=True)

    site_url = db.Column(db.String(500), nullable=True)

    # --- Counters ---
    poll_attempts = db.Column(db.Integer, default=0, nullable=False)
    dns_check_count = db.Column(db.Integer, default=0, nullable=False)
    ssl_check_count = db.Column(db.Integer, default=0, nullable=False)
    error_count = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text, nullable=True)

    last_polled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    connected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    disconnected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    site = db.relationship("ClientSite", back_populates="domain_connections")

    @property
    def is_active(self):
        """True while this connection holds its domain."""
        return self.status not in self.INACTIVE_STATUSES

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def to_dict(self):
        def _iso(value):
            return value.isoformat() if value else None

        return {
            "connection_id": self.id,
            "domain": self.domain,
            "site_id": self.site_id,
            "agency_id": self.agency_id,
            "lead_id": self.lead_id,
            "user_id": self.user_id,
            "business_name": self.business_name,
            "connection_method": self.connection_method,
            "status": self.status,
            "dns_records": self.dns_records or [],
            "host_state": self.host_state,
            "ownership_status": self.ownership_status,
            "cert_state": self.cert_state,
            "verification_txt_record": self.verification_txt_record,
            "ownership_verified_at": _iso(self.ownership_verified_at),
            "dns_provider": self.dns_provider,
            "dns_configured_at": _iso(self.dns_configured_at),
            "site_url": self.site_url,
            "poll_attempts": self.poll_attempts,
            "dns_check_count": self.dns_check_count,
            "ssl_check_count": self.ssl_check_count,
            "error_count": self.error_count,
            "error_message": self.error_message,
            "last_polled_at": _iso(self.last_polled_at),
            "connected_at": _iso(self.connected_at),
            "disconnected_at": _iso(self.disconnected_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<DomainConnection {self.id} {self.domain} ({self.status})>"
