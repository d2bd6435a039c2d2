"""Domain connection orchestrator: site, content, custom domain.

connect_domain() walks a new connection through:
  creating_site -> deploying_content -> adding_domain -> mapped status
persisting each status before the step runs, so a crash mid-flow leaves
an observable record the reconciliation loop can pick up. launch_site()
is the same flow without a domain; disconnect_domain() tears a
connection down.
"""

import logging
import secrets
import time
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from sitelaunch.extensions import db
from sitelaunch.models.domain_connection import DomainConnection
from sitelaunch.models.site import ClientSite
from sitelaunch.services import dns_provider_service
from sitelaunch.services.audit_service import has_audit_event, log_audit
from sitelaunch.services.deploy_service import deploy
from sitelaunch.services.domain_status import map_custom_domain
from sitelaunch.services.domain_utils import (
    VERIFICATION_TXT_PREFIX,
    build_dns_records,
    desired_txt_value,
    generate_verification_token,
    normalize_domain,
    validate_domain,
)
from sitelaunch.services.hosting_client import (
    HostingAPIError,
    get_hosting_client,
    is_transient_error,
)
from sitelaunch.services.retry import retry_call
from sitelaunch.services.site_registry import ensure_site

logger = logging.getLogger(__name__)

# Site statuses that only make sense while a flow is running.
MID_FLOW_SITE_STATUSES = ("creating", "deploying")


class ConnectionConflictError(Exception):
    """The domain is already held by another active connection."""

    def __init__(self, domain, site_id=None, connection_id=None):
        self.domain = domain
        self.site_id = site_id
        self.connection_id = connection_id
        super().__init__(
            f"Domain {domain} is already connected to site {site_id} "
            f"(connection {connection_id})"
        )


def new_connection_id(prefix="conn"):
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def find_active_connection(domain):
    return (
        DomainConnection.query
        .filter(DomainConnection.domain == domain)
        .filter(DomainConnection.status.notin_(DomainConnection.INACTIVE_STATUSES))
        .first()
    )


def get_connection(connection_id):
    """Return the serialized connection, or None."""
    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    return connection.to_dict() if connection else None


def _result(connection, success=True, error=None):
    return {
        "success": success,
        "connection_id": connection.id,
        "site_id": connection.site_id,
        "site_url": connection.site_url,
        "custom_domain": connection.domain,
        "status": connection.status,
        "dns_records": connection.dns_records or [],
        "error": error,
    }


def _update_connection(connection_id, **fields):
    """Re-read, apply, commit. Last writer wins."""
    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    for key, value in fields.items():
        setattr(connection, key, value)
    db.session.commit()
    return connection


def fail_connection(connection_id, message):
    """Mark the connection failed and roll its site back to ``error``.

    The site is rolled back when it is mid-flow or when it is currently
    showing this connection's state. Discards uncommitted changes first.
    """
    db.session.rollback()
    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    connection.status = "error"
    connection.error_message = message
    connection.error_count = (connection.error_count or 0) + 1

    if connection.site_id:
        site = db.session.get(ClientSite, connection.site_id, populate_existing=True)
        if site and site.domain_connection_id == connection.id:
            site.domain_connection_status = "error"
            site.status = "error"
        elif site and site.status in MID_FLOW_SITE_STATUSES:
            site.status = "error"
    db.session.commit()
    logger.warning(f"Connection {connection_id} failed: {message}")
    return connection


def _fail(connection_id, message):
    return _result(fail_connection(connection_id, message), success=False, error=message)


# ──────────────────────────────────────────────
# Site mirroring & completion
# ──────────────────────────────────────────────

def mirror_to_site(connection):
    """Copy the connection's state onto its site. Caller commits."""
    site = db.session.get(ClientSite, connection.site_id)
    if not site:
        return None
    site.custom_domain = connection.domain
    site.domain_connection_id = connection.id
    site.domain_connection_status = connection.status
    site.ssl_status = connection.cert_state
    if connection.status == "connected":
        site.status = "active"
    elif connection.status in ("error", "verification_failed"):
        site.status = "error"
    else:
        site.status = "domain_pending"
    return site


def record_completion(connection, actor_id=None):
    """Stamp a newly connected domain. Caller commits.

    The ``domain.connected`` event is written once per connection no matter
    how many polls observe the connected state.
    """
    if not connection.connected_at:
        connection.connected_at = datetime.now(timezone.utc)
    if has_audit_event("domain.connected", connection.id):
        return False
    log_audit(
        "domain.connected",
        resource="domain_connection",
        resource_id=connection.id,
        actor_id=actor_id,
        metadata={
            "domain": connection.domain,
            "site_id": connection.site_id,
            "cert_state": connection.cert_state,
        },
    )
    logger.info(f"Domain {connection.domain} connected to {connection.site_id}")
    return True


# ──────────────────────────────────────────────
# Connect
# ──────────────────────────────────────────────

def _register_custom_domain(site_id, domain):
    """Create the provider registration; an existing one is reused."""
    client = get_hosting_client()
    config = current_app.config

    def attempt(n):
        try:
            return client.create_custom_domain(site_id, domain)
        except HostingAPIError as e:
            if e.is_already_exists:
                existing = client.get_custom_domain(site_id, domain)
                if existing is not None:
                    logger.info(f"Custom domain {domain} already registered on {site_id}")
                    return existing
            raise

    return retry_call(
        attempt,
        max_attempts=config["DOMAIN_REGISTRATION_MAX_ATTEMPTS"],
        should_retry=is_transient_error,
        base_delay=config["RETRY_BASE_DELAY"],
        max_delay=config["RETRY_MAX_DELAY"],
        label=f"Register {domain}",
    )


def _start_connection(**fields):
    """Insert a new connection row; the unique index backs the conflict check."""
    connection = DomainConnection(**fields)
    db.session.add(connection)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = find_active_connection(fields["domain"])
        raise ConnectionConflictError(
            fields["domain"],
            existing.site_id if existing else None,
            existing.id if existing else None,
        )
    return connection


def connect_domain(
    domain,
    lead_id,
    agency_id,
    business_name,
    user_id=None,
    html_content=None,
    connection_method="manual",
):
    """Provision a site, publish content, and register a custom domain.

    Returns dict with keys: success, connection_id, site_id, site_url,
    custom_domain, status, dns_records, error.

    Raises ValueError for bad input and ConnectionConflictError when the
    domain is already held; neither creates a connection record.
    """
    missing = [
        name for name, value in (
            ("domain", domain),
            ("lead_id", lead_id),
            ("agency_id", agency_id),
            ("business_name", business_name),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    if connection_method not in ("manual", "dns_provider"):
        raise ValueError(f"Unsupported connection method: {connection_method}")

    domain = normalize_domain(domain)
    error = validate_domain(domain)
    if error:
        raise ValueError(error)

    existing = find_active_connection(domain)
    if existing:
        raise ConnectionConflictError(domain, existing.site_id, existing.id)

    token = generate_verification_token()
    connection = _start_connection(
        id=new_connection_id(),
        domain=domain,
        agency_id=agency_id,
        lead_id=lead_id,
        user_id=user_id,
        business_name=business_name,
        connection_method=connection_method,
        status="creating_site",
        verification_token=token,
    )
    connection_id = connection.id
    log_audit(
        "domain.connection_started",
        resource="domain_connection",
        resource_id=connection_id,
        actor_id=user_id,
        metadata={"domain": domain, "lead_id": lead_id, "method": connection_method},
    )
    db.session.commit()
    logger.info(f"Connecting {domain} for lead {lead_id} ({connection_id})")

    try:
        # --- 1. Site ---
        site = ensure_site(business_name, lead_id, agency_id, user_id)
        site_id = site["site_id"]
        _update_connection(connection_id, site_id=site_id, site_url=site["default_url"])

        # --- 2. Content ---
        if html_content:
            _update_connection(connection_id, status="deploying_content")
            deployed = deploy(
                site_id, html_content, message=f"Connect {domain}", actor_id=user_id
            )
            if not deployed["success"]:
                return _fail(connection_id, f"Deployment failed: {deployed['error']}")

        # --- 3. Custom domain ---
        _update_connection(connection_id, status="adding_domain")
        registration = _register_custom_domain(site_id, domain)

        # --- 4. Status + DNS instructions ---
        status, host_state, ownership_status, cert_state = map_custom_domain(registration)
        txt_value = desired_txt_value(registration) or f"{VERIFICATION_TXT_PREFIX}{token}"

        connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
        connection.status = status
        connection.host_state = host_state
        connection.ownership_status = ownership_status
        connection.cert_state = cert_state
        connection.verification_txt_record = txt_value
        connection.dns_records = build_dns_records(site_id, txt_value)
        connection.error_message = None

        # --- 5. Mirror onto the site ---
        mirror_to_site(connection)
        if status == "connected":
            record_completion(connection, actor_id=user_id)
        db.session.commit()

    except Exception as e:
        logger.exception(f"Connecting {domain} failed at {connection_id}")
        return _fail(connection_id, str(e))

    # --- 6. Optional DNS automation ---
    if (
        connection_method == "dns_provider"
        and status in dns_provider_service.CONFIGURABLE_STATUSES
    ):
        try:
            dns = dns_provider_service.configure_dns(connection_id, actor_id=user_id)
        except ValueError as e:
            return _fail(connection_id, str(e))
        if not dns["success"]:
            connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
            return _result(connection, success=False, error=dns["error"])

    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    logger.info(f"Connection {connection_id} for {domain} is {connection.status}")
    return _result(connection)


# ──────────────────────────────────────────────
# Launch (no custom domain)
# ──────────────────────────────────────────────

def launch_site(lead_id, agency_id, business_name, html_content, user_id=None):
    """Provision and publish a site on its default URL.

    Returns the same shape as connect_domain(); on success the status is
    ``connected`` and custom_domain is None.
    """
    missing = [
        name for name, value in (
            ("lead_id", lead_id),
            ("agency_id", agency_id),
            ("business_name", business_name),
            ("html_content", html_content),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")

    connection = _start_connection(
        id=new_connection_id("launch"),
        domain=None,
        agency_id=agency_id,
        lead_id=lead_id,
        user_id=user_id,
        business_name=business_name,
        connection_method="launch",
        status="creating_site",
    )
    connection_id = connection.id
    db.session.commit()

    try:
        site = ensure_site(business_name, lead_id, agency_id, user_id)
        site_id = site["site_id"]
        _update_connection(
            connection_id,
            site_id=site_id,
            site_url=site["default_url"],
            status="deploying_content",
        )

        deployed = deploy(site_id, html_content, message="Launch", actor_id=user_id)
        if not deployed["success"]:
            return _fail(connection_id, f"Deployment failed: {deployed['error']}")

        connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
        connection.status = "connected"
        connection.site_url = deployed["site_url"]
        connection.connected_at = datetime.now(timezone.utc)

        site_record = db.session.get(ClientSite, site_id)
        site_record.domain_connection_id = connection_id
        site_record.domain_connection_status = "connected"
        site_record.status = "active"

        log_audit(
            "site.launched",
            resource="domain_connection",
            resource_id=connection_id,
            actor_id=user_id,
            metadata={"site_id": site_id, "site_url": deployed["site_url"]},
        )
        db.session.commit()

    except Exception as e:
        logger.exception(f"Launch failed at {connection_id}")
        return _fail(connection_id, str(e))

    logger.info(f"Launched {site_id} at {connection.site_url}")
    return _result(connection)


# ──────────────────────────────────────────────
# Disconnect
# ──────────────────────────────────────────────

def disconnect_domain(connection_id, actor_id=None):
    """Remove a custom domain from its site and retire the connection.

    Raises LookupError for an unknown connection, ValueError if it is
    already inactive, and HostingAPIError if the provider refuses.
    """
    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    if not connection:
        raise LookupError(f"Domain connection {connection_id} not found")
    if not connection.is_active:
        raise ValueError(f"Connection {connection_id} is already {connection.status}")

    if connection.domain and connection.site_id:
        get_hosting_client().delete_custom_domain(connection.site_id, connection.domain)

    connection.status = "disconnected"
    connection.disconnected_at = datetime.now(timezone.utc)

    site = db.session.get(ClientSite, connection.site_id) if connection.site_id else None
    if site and site.domain_connection_id == connection.id:
        site.custom_domain = None
        site.domain_connection_id = None
        site.domain_connection_status = None
        site.ssl_status = None
        site.status = "active"

    log_audit(
        "domain.disconnected",
        resource="domain_connection",
        resource_id=connection.id,
        actor_id=actor_id,
        metadata={"domain": connection.domain, "site_id": connection.site_id},
    )
    db.session.commit()
    logger.info(f"Disconnected {connection.domain} from {connection.site_id}")
    return _result(connection)
