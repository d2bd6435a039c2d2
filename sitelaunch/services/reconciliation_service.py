"""Reconciliation service: drives domain connections to a final state.

poll_once() reads the provider's view of one custom domain, maps it to a
connection status, persists it and says whether (and when) to look again.
run_scheduled_poll() is the batch entry point, called from the Flask CLI
(`flask poll-domains`) on a one-minute cron.

Every poll gives up eventually: per-phase attempt ceilings plus a
wall-clock budget counted from the connection's creation.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import or_

from sitelaunch.extensions import db
from sitelaunch.models.domain_connection import DomainConnection
from sitelaunch.services.connection_service import (
    fail_connection,
    mirror_to_site,
    record_completion,
)
from sitelaunch.services.domain_status import (
    DNS_PHASE,
    POLLABLE_STATUSES,
    SSL_PHASE,
    STALLED_STATUSES,
    map_custom_domain,
    next_poll_delay,
)
from sitelaunch.services.hosting_client import HostingAPIError, get_hosting_client

logger = logging.getLogger(__name__)


def _as_utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _result(connection_id, domain, status, is_complete, requires_retry, delay=0,
            error=None, connection=None):
    return {
        "connection_id": connection_id,
        "domain": domain,
        "status": status,
        "host_state": connection.host_state if connection else None,
        "ownership_status": connection.ownership_status if connection else None,
        "cert_state": connection.cert_state if connection else None,
        "is_complete": is_complete,
        "requires_retry": requires_retry,
        "next_check_delay": delay,
        "error": error,
    }


def _exhaustion_reason(connection, status, elapsed_seconds, config):
    """Why polling should stop for *status*, or None to keep going."""
    if elapsed_seconds > config["DOMAIN_POLL_MAX_DURATION"]:
        minutes = int(elapsed_seconds // 60)
        return f"Gave up after {minutes} minutes waiting for {connection.domain} ({status})"
    dns_limit = config["DNS_VERIFICATION_MAX_ATTEMPTS"]
    if status in DNS_PHASE and connection.dns_check_count >= dns_limit:
        return (
            f"DNS verification for {connection.domain} did not complete "
            f"after {connection.dns_check_count} checks"
        )
    ssl_limit = config["SSL_PROVISIONING_MAX_ATTEMPTS"]
    if status in SSL_PHASE and connection.ssl_check_count >= ssl_limit:
        return (
            f"SSL certificate for {connection.domain} was not issued "
            f"after {connection.ssl_check_count} checks"
        )
    return None


def _give_up(connection, status, reason):
    terminal = "verification_failed" if status in DNS_PHASE else "error"
    connection.status = terminal
    connection.error_message = reason
    mirror_to_site(connection)
    db.session.commit()
    logger.warning(f"Connection {connection.id} -> {terminal}: {reason}")
    return _result(
        connection.id, connection.domain, terminal,
        is_complete=False, requires_retry=False, error=reason, connection=connection,
    )


def _check_stalled(connection, domain, now, config):
    """A connection still in a setup status; only a crashed flow stays there.

    Past the wall-clock budget, or with no site after the grace period, it
    is failed so the domain is released.
    """
    elapsed = (now - _as_utc(connection.created_at or now)).total_seconds()
    reason = None
    if elapsed > config["DOMAIN_POLL_MAX_DURATION"]:
        reason = (
            f"Setup of {domain or connection.id} stalled in {connection.status} "
            f"for {int(elapsed // 60)} minutes"
        )
    elif not connection.site_id and elapsed > config["DOMAIN_FLOW_STALL_GRACE"]:
        reason = f"No site was created for {domain or connection.id} ({connection.status})"

    if reason is None:
        connection.last_polled_at = now
        db.session.commit()
        return _result(
            connection.id, domain, connection.status,
            is_complete=False, requires_retry=True,
            delay=config["DOMAIN_POLL_INITIAL_INTERVAL"], connection=connection,
        )

    connection = fail_connection(connection.id, reason)
    return _result(
        connection.id, domain, "error",
        is_complete=False, requires_retry=False, error=reason, connection=connection,
    )


def poll_once(connection_id, site_id=None, domain=None, now=None):
    """Check one connection against the provider and persist the outcome.

    Returns dict with keys: connection_id, domain, status, host_state,
    ownership_status, cert_state, is_complete, requires_retry,
    next_check_delay (seconds), error.
    """
    config = current_app.config
    now = now or datetime.now(timezone.utc)

    connection = db.session.get(DomainConnection, connection_id, populate_existing=True)
    if not connection:
        return _result(
            connection_id, domain, "error",
            is_complete=True, requires_retry=False,
            error=f"Domain connection {connection_id} not found",
        )

    site_id = site_id or connection.site_id
    domain = domain or connection.domain

    # --- Already settled ---
    if connection.status == "connected":
        return _result(
            connection.id, domain, "connected",
            is_complete=True, requires_retry=False, connection=connection,
        )
    if connection.is_terminal:
        return _result(
            connection.id, domain, connection.status,
            is_complete=False, requires_retry=False,
            error=connection.error_message, connection=connection,
        )
    if connection.status in STALLED_STATUSES:
        return _check_stalled(connection, domain, now, config)
    if not domain or not site_id:
        return _result(
            connection.id, domain, connection.status,
            is_complete=False, requires_retry=False,
            error="Connection has no custom domain to check", connection=connection,
        )

    connection.poll_attempts = (connection.poll_attempts or 0) + 1
    connection.last_polled_at = now
    elapsed = (now - _as_utc(connection.created_at or now)).total_seconds()
    current_status = connection.status

    # --- Fetch ---
    try:
        registration = get_hosting_client().get_custom_domain(site_id, domain)
    except HostingAPIError as e:
        connection.error_count = (connection.error_count or 0) + 1
        connection.error_message = str(e)
        reason = _exhaustion_reason(connection, current_status, elapsed, config)
        if reason:
            return _give_up(connection, current_status, reason)
        db.session.commit()
        logger.warning(f"Status check for {domain} failed: {e}")
        return _result(
            connection.id, domain, current_status,
            is_complete=False, requires_retry=True,
            delay=next_poll_delay(current_status, config),
            error=str(e), connection=connection,
        )

    if registration is None:
        message = f"Domain {domain} is not registered with the hosting provider yet"
        reason = _exhaustion_reason(connection, current_status, elapsed, config)
        if reason:
            return _give_up(connection, current_status, reason)
        connection.error_message = message
        db.session.commit()
        return _result(
            connection.id, domain, current_status,
            is_complete=False, requires_retry=True,
            delay=config["DOMAIN_POLL_INITIAL_INTERVAL"],
            error=message, connection=connection,
        )

    # --- Map ---
    status, host_state, ownership_status, cert_state = map_custom_domain(registration)
    connection.host_state = host_state
    connection.ownership_status = ownership_status
    connection.cert_state = cert_state
    if status in DNS_PHASE:
        connection.dns_check_count = (connection.dns_check_count or 0) + 1
    elif status in SSL_PHASE:
        connection.ssl_check_count = (connection.ssl_check_count or 0) + 1

    if status == "connected":
        connection.status = "connected"
        connection.error_message = None
        mirror_to_site(connection)
        record_completion(connection)
        db.session.commit()
        return _result(
            connection.id, domain, "connected",
            is_complete=True, requires_retry=False, connection=connection,
        )

    if status == "error":
        message = f"Domain {domain} is bound to a conflicting host ({host_state})"
        connection.status = "error"
        connection.error_message = message
        connection.error_count = (connection.error_count or 0) + 1
        mirror_to_site(connection)
        db.session.commit()
        return _result(
            connection.id, domain, "error",
            is_complete=False, requires_retry=False, error=message, connection=connection,
        )

    reason = _exhaustion_reason(connection, status, elapsed, config)
    if reason:
        return _give_up(connection, status, reason)

    if status != current_status:
        logger.info(f"Connection {connection.id} ({domain}): {current_status} -> {status}")
    connection.status = status
    connection.error_message = None
    mirror_to_site(connection)
    db.session.commit()
    return _result(
        connection.id, domain, status,
        is_complete=False, requires_retry=True,
        delay=next_poll_delay(status, config), connection=connection,
    )


# ──────────────────────────────────────────────
# Scheduled batch
# ──────────────────────────────────────────────

def _is_due(connection, now, config):
    last = _as_utc(connection.last_polled_at)
    if last is None:
        return True
    return (now - last).total_seconds() >= next_poll_delay(connection.status, config)


def _safe_poll(connection_id, site_id, domain, now=None):
    """poll_once() that never takes the batch down with it."""
    try:
        return poll_once(connection_id, site_id, domain, now=now)
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Polling {connection_id} ({domain}) failed")
        result = _result(
            connection_id, domain, None,
            is_complete=False, requires_retry=True, error=str(e),
        )
        result["failed"] = True
        return result


def find_due_connections(limit, now, config):
    """Unsettled connections, least recently checked first.

    Setup statuses are included with or without a domain so a crashed
    launch or connect flow still gets failed eventually.
    """
    candidates = (
        DomainConnection.query
        .filter(DomainConnection.status.in_(POLLABLE_STATUSES))
        .filter(or_(
            DomainConnection.domain.isnot(None),
            DomainConnection.status.in_(STALLED_STATUSES),
        ))
        .order_by(
            DomainConnection.last_polled_at.asc().nulls_first(),
            DomainConnection.created_at.asc(),
        )
        .limit(limit)
        .all()
    )
    due = [c for c in candidates if _is_due(c, now, config)]
    return candidates, due


def run_scheduled_poll(limit=None, dry_run=False, now=None):
    """Poll every pending connection that is due for a check.

    Returns dict with keys: found, polled, skipped, failed, results.
    """
    config = current_app.config
    now = now or datetime.now(timezone.utc)
    limit = limit or config["DOMAIN_POLL_BATCH_SIZE"]

    candidates, due = find_due_connections(limit, now, config)
    targets = [(c.id, c.site_id, c.domain) for c in due]
    skipped = len(candidates) - len(due)
    logger.info(
        f"Scheduled poll: {len(candidates)} pending, {len(targets)} due, {skipped} skipped"
    )

    if dry_run:
        results = [
            {"connection_id": cid, "domain": domain, "status": "due"}
            for cid, _, domain in targets
        ]
        return {
            "found": len(candidates),
            "polled": 0,
            "skipped": skipped,
            "failed": 0,
            "results": results,
        }

    workers = config.get("DOMAIN_POLL_WORKERS", 1)
    if workers <= 1 or len(targets) <= 1:
        results = [_safe_poll(cid, site_id, domain, now=now) for cid, site_id, domain in targets]
    else:
        app = current_app._get_current_object()

        def run(target):
            with app.app_context():
                return _safe_poll(*target, now=now)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(run, targets))

    failed = sum(1 for r in results if r.get("failed"))
    return {
        "found": len(candidates),
        "polled": len(results) - failed,
        "skipped": skipped,
        "failed": failed,
        "results": results,
    }
