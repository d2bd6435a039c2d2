"""Site registry: idempotent creation and lookup of hosting sites.

The site id is a pure function of (business name, lead id), so asking for
the same lead twice lands on the same site. Lookup order is local record,
then the provider, then creation.
"""

import logging
import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from sitelaunch.extensions import db
from sitelaunch.models.site import ClientSite
from sitelaunch.services.audit_service import log_audit
from sitelaunch.services.hosting_client import (
    HostingAPIError,
    get_hosting_client,
    is_transient_error,
)
from sitelaunch.services.retry import retry_call

logger = logging.getLogger(__name__)

SITE_ID_MAX_LENGTH = 30
SITE_NAME_MAX_LENGTH = 15
SHORT_ID_LENGTH = 8
LABEL_MAX_LENGTH = 63


def generate_site_id(business_name, lead_id, prefix="rms"):
    """Derive the provider site id for a lead.

    >>> generate_site_id("Joe's Plumbing", "AbC123xyz789")
    'rms-joes-plumbing-abc123xy'
    """
    short_id = re.sub(r"[^a-zA-Z0-9]", "", lead_id or "")[:SHORT_ID_LENGTH].lower()
    if not short_id:
        raise ValueError("lead_id must contain at least one letter or digit")

    name = (business_name or "").lower()
    name = re.sub(r"[^a-z0-9\s-]", "", name)
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"-+", "-", name).strip("-")
    name = name[:SITE_NAME_MAX_LENGTH].strip("-")

    site_id = f"{prefix}-{name}-{short_id}" if name else ""
    # Provider ids must start with a letter
    if not re.match(r"^[a-z]", site_id):
        site_id = f"{prefix}-site-{short_id}"

    return site_id[:SITE_ID_MAX_LENGTH].rstrip("-")


def default_site_url(site_id):
    return f"https://{site_id}.web.app"


def _labels(agency_id, lead_id, user_id):
    created_by = user_id or current_app.config.get("HOSTING_LABEL_CREATED_BY", "")
    return {
        "agency-id": _label_value(agency_id),
        "lead-id": _label_value(lead_id),
        "created-by": _label_value(created_by),
    }


def _label_value(value):
    """Provider labels: lowercase letters, digits, '-' and '_', at most 63 chars."""
    value = re.sub(r"[^a-z0-9_-]", "-", (value or "").lower())
    return value[:LABEL_MAX_LENGTH]


# ──────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────

def get_site(site_id):
    return db.session.get(ClientSite, site_id)


def update_site(site_id, **fields):
    """Read-modify-write a site record and commit. Returns the site or None."""
    site = db.session.get(ClientSite, site_id, populate_existing=True)
    if not site:
        return None
    for key, value in fields.items():
        setattr(site, key, value)
    db.session.commit()
    return site


def _create_remote_site(site_id, labels):
    client = get_hosting_client()
    config = current_app.config

    def attempt(n):
        try:
            client.create_site(site_id, labels)
        except HostingAPIError as e:
            if e.is_already_exists:
                logger.info(f"Site {site_id} already exists remotely, treating as created")
                return
            raise

    retry_call(
        attempt,
        max_attempts=config["SITE_CREATION_MAX_ATTEMPTS"],
        should_retry=is_transient_error,
        base_delay=config["RETRY_BASE_DELAY"],
        max_delay=config["RETRY_MAX_DELAY"],
        label=f"Create site {site_id}",
    )


def ensure_site(business_name, lead_id, agency_id, user_id=None):
    """Return the site for this lead, creating it if needed.

    Returns dict with keys:
        site_id (str): Provider site id
        is_new (bool): True only when this call created the remote site
        default_url (str): https://{site_id}.web.app

    Raises ValueError for missing inputs and HostingAPIError once the
    creation retry budget is spent.
    """
    if not business_name or not lead_id or not agency_id:
        raise ValueError("business_name, lead_id and agency_id are required")

    site_id = generate_site_id(
        business_name, lead_id, prefix=current_app.config["HOSTING_SITE_PREFIX"]
    )
    url = default_site_url(site_id)

    # --- 1. Local record ---
    site = db.session.get(ClientSite, site_id)
    if site:
        if user_id and not site.user_id:
            site.user_id = user_id
            db.session.commit()
        logger.info(f"Site {site_id} already registered locally")
        return {"site_id": site_id, "is_new": False, "default_url": site.default_url}

    client = get_hosting_client()

    # --- 2. Remote only (local record lost or created elsewhere) ---
    remote = client.get_site(site_id)
    if remote is not None:
        _insert_site(
            site_id,
            business_name=business_name,
            lead_id=lead_id,
            agency_id=agency_id,
            user_id=user_id,
            default_url=remote.get("defaultUrl") or url,
            status="active",
        )
        logger.info(f"Site {site_id} found remotely, local record restored")
        return {"site_id": site_id, "is_new": False, "default_url": url}

    # --- 3. Create ---
    _create_remote_site(site_id, _labels(agency_id, lead_id, user_id))
    created = _insert_site(
        site_id,
        business_name=business_name,
        lead_id=lead_id,
        agency_id=agency_id,
        user_id=user_id,
        default_url=url,
        status="creating",
        audit=True,
    )
    logger.info(f"Created site {site_id} for lead {lead_id}")
    return {"site_id": site_id, "is_new": created, "default_url": url}


def _insert_site(site_id, audit=False, **fields):
    """Insert the local record. Returns False if a concurrent request won."""
    site = ClientSite(id=site_id, site_type="production", **fields)
    db.session.add(site)
    try:
        if audit:
            log_audit(
                "site.created",
                resource="site",
                resource_id=site_id,
                actor_id=fields.get("user_id"),
                metadata={"lead_id": fields.get("lead_id"), "agency_id": fields.get("agency_id")},
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Site {site_id} was registered concurrently, using existing record")
        return False
    return True
