"""DNS provider automation and ownership checks.

Uses:
- GoDaddy Domains API (v1) to write a connection's DNS records for the
  customer when the domain sits in the platform's GoDaddy account.
- Google DNS-over-HTTPS (dns.google) to see whether the ownership TXT
  record is visible yet.

Credentials come from GODADDY_API_KEY / GODADDY_API_SECRET.
"""

import logging
from datetime import datetime, timezone

import requests
from flask import current_app

from sitelaunch.extensions import db
from sitelaunch.models.domain_connection import DomainConnection
from sitelaunch.services.audit_service import log_audit

logger = logging.getLogger(__name__)

GODADDY_RECORD_TTL = 600
CONFIGURABLE_STATUSES = ("adding_domain", "pending_dns", "dns_propagating")
ESTIMATED_PROPAGATION_MINUTES = 15

GODADDY_ERRORS = {
    401: "GoDaddy authentication failed. Credentials may be invalid.",
    403: "Access denied. This domain may not be in the platform account.",
    404: "Domain not found in GoDaddy account.",
    429: "Rate limited by GoDaddy. Please try again in a few minutes.",
}


# ──────────────────────────────────────────────
# GoDaddy
# ──────────────────────────────────────────────

def _godaddy_headers():
    config = current_app.config
    key = config.get("GODADDY_API_KEY")
    secret = config.get("GODADDY_API_SECRET")
    if not key or not secret:
        raise ValueError("GoDaddy credentials are not configured")
    return {
        "Authorization": f"sso-key {key}:{secret}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _godaddy_url(path):
    return f"{current_app.config['GODADDY_API_BASE'].rstrip('/')}{path}"


def check_domain_on_godaddy(domain):
    """True if the domain is on the configured GoDaddy account."""
    try:
        resp = requests.get(
            _godaddy_url(f"/domains/{domain}"), headers=_godaddy_headers(), timeout=10
        )
        return resp.ok
    except requests.exceptions.RequestException as e:
        logger.warning(f"GoDaddy domain check failed for {domain}: {e}")
        return False


def to_godaddy_records(dns_records, include_www=True):
    records = []
    for record in dns_records or []:
        if record["type"] == "CNAME" and not include_www:
            continue
        records.append({
            "type": record["type"],
            "name": record["name"],
            "data": record["value"],
            "ttl": GODADDY_RECORD_TTL,
        })
    return records


def update_godaddy_records(domain, records):
    """PATCH records onto the zone without removing existing ones.

    Returns (ok, error_message).
    """
    try:
        resp = requests.patch(
            _godaddy_url(f"/domains/{domain}/records"),
            json=records,
            headers=_godaddy_headers(),
            timeout=15,
        )
    except requests.exceptions.RequestException as e:
        logger.warning(f"GoDaddy record update failed for {domain}: {e}")
        return False, f"Could not reach GoDaddy: {e}"

    if resp.ok:
        return True, None

    try:
        body = resp.json()
    except ValueError:
        body = {}
    logger.warning(f"GoDaddy API error {resp.status_code} for {domain}: {body}")

    if resp.status_code in GODADDY_ERRORS:
        return False, GODADDY_ERRORS[resp.status_code]
    if resp.status_code == 422:
        return False, body.get("message") or "Invalid DNS record format."
    return False, body.get("message") or f"GoDaddy API error ({resp.status_code})"


def configure_dns(connection_id, include_www=True, actor_id=None):
    """Write a connection's DNS records at GoDaddy.

    Returns dict with keys:
        success (bool)
        records_added (list): Records sent to GoDaddy
        estimated_propagation_minutes (int|None)
        error (str|None)

    Raises LookupError for an unknown connection and ValueError when the
    connection has no domain, is not waiting on DNS, or GoDaddy is not
    configured.
    """
    from sitelaunch.services.connection_service import fail_connection, mirror_to_site

    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    if not connection:
        raise LookupError(f"Domain connection {connection_id} not found")
    if not connection.domain:
        raise ValueError("Connection has no custom domain to configure")
    if connection.status not in CONFIGURABLE_STATUSES:
        raise ValueError(
            f"Connection {connection_id} is {connection.status}; "
            "DNS can only be configured while the domain is waiting on DNS"
        )
    _godaddy_headers()  # fail fast on missing credentials

    domain = connection.domain
    records = to_godaddy_records(connection.dns_records, include_www=include_www)

    if not check_domain_on_godaddy(domain):
        ok, error = False, (
            f"Domain {domain} is not in the GoDaddy account. "
            "Add the DNS records manually."
        )
    else:
        ok, error = update_godaddy_records(domain, records)

    if not ok:
        fail_connection(connection_id, error)
        return {
            "success": False,
            "records_added": [],
            "estimated_propagation_minutes": None,
            "error": error,
        }

    connection.status = "dns_propagating"
    connection.connection_method = "dns_provider"
    connection.dns_provider = "godaddy"
    connection.dns_configured_at = datetime.now(timezone.utc)
    connection.error_message = None
    if connection.site_id:
        mirror_to_site(connection)
    log_audit(
        "domain.dns_configured",
        resource="domain_connection",
        resource_id=connection.id,
        actor_id=actor_id,
        metadata={"provider": "godaddy", "records": len(records)},
    )
    db.session.commit()
    logger.info(f"DNS configured for {domain} via GoDaddy ({len(records)} records)")

    return {
        "success": True,
        "records_added": records,
        "estimated_propagation_minutes": ESTIMATED_PROPAGATION_MINUTES,
        "error": None,
    }


# ──────────────────────────────────────────────
# Ownership TXT check
# ──────────────────────────────────────────────

DOH_URL = "https://dns.google/resolve"
TXT_RECORD_TYPE = 16


def lookup_txt_records(domain):
    """Return the TXT values published for *domain*; [] if none or on error."""
    try:
        resp = requests.get(
            DOH_URL,
            params={"name": domain, "type": TXT_RECORD_TYPE},
            headers={"Accept": "application/json"},
            timeout=8,
        )
        if resp.status_code != 200:
            logger.warning(f"TXT lookup returned {resp.status_code} for {domain}")
            return []
        answers = resp.json().get("Answer") or []
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning(f"TXT lookup failed for {domain}: {e}")
        return []

    return [
        answer.get("data", "").strip().strip('"').strip()
        for answer in answers
        if answer.get("type", TXT_RECORD_TYPE) == TXT_RECORD_TYPE
    ]


def verify_ownership(connection_id, actor_id=None):
    """Check whether the connection's ownership TXT record is published.

    Returns dict with keys: verified (bool), expected (str), found (list).
    """
    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    if not connection:
        raise LookupError(f"Domain connection {connection_id} not found")
    if not connection.domain or not connection.verification_txt_record:
        raise ValueError("Connection has no ownership record to verify")

    expected = connection.verification_txt_record
    found = lookup_txt_records(connection.domain)
    verified = expected in found

    if verified and not connection.ownership_verified_at:
        connection.ownership_verified_at = datetime.now(timezone.utc)
        log_audit(
            "domain.ownership_verified",
            resource="domain_connection",
            resource_id=connection.id,
            actor_id=actor_id,
            metadata={"domain": connection.domain},
        )
        db.session.commit()

    return {"verified": verified, "expected": expected, "found": found}
