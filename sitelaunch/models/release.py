"""Site release model.

Local record of one deploy attempt: the provider version, the file
manifest that was offered for it, which blobs actually had to be uploaded,
and the release that made it live. Failed attempts are kept with their
error so a broken deploy can be traced after the fact.
"""

import uuid

from sitelaunch.extensions import db


class SiteRelease(db.Model):
    __tablename__ = "site_releases"

    STATUSES = ["created", "finalized", "released", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    site_id = db.Column(
        db.String(30), db.ForeignKey("client_sites.id"), nullable=False, index=True
    )
    version_name = db.Column(db.String(255), nullable=True)  # sites/{site}/versions/{v}
    version_id = db.Column(db.String(255), nullable=True)
    files = db.Column(db.JSON, default=dict)  # path -> sha256 of gzip bytes
    uploaded_hashes = db.Column(db.JSON, default=list)
    status = db.Column(
        db.String(20), default="created", nullable=False
    )  # created | finalized | released | failed
    release_id = db.Column(db.String(255), nullable=True)
    message = db.Column(db.String(255), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    site = db.relationship("ClientSite", back_populates="releases")

    def __repr__(self):
        return f"<SiteRelease {self.version_id} ({self.status})>"
