"""Domains blueprint: /api/domains/*

Route Map:
  POST /api/domains/connect                   Site + content + custom domain
  POST /api/domains/launch                    Site + content, default URL only
  GET  /api/domains/<id>                      Connection record
  POST /api/domains/<id>/poll                 Check provider status now
  POST /api/domains/<id>/disconnect           Remove the custom domain
  POST /api/domains/<id>/configure-dns        Write DNS records at GoDaddy
  POST /api/domains/<id>/verify-ownership     Look for the ownership TXT record

Callers are authenticated upstream; user_id is taken from the body.
Returns: { ok: true, ... } or { ok: false, error: "..." }
"""

import logging

from flask import Blueprint, jsonify, request

from sitelaunch.services import dns_provider_service
from sitelaunch.services.connection_service import (
    ConnectionConflictError,
    connect_domain,
    disconnect_domain,
    get_connection,
    launch_site,
)
from sitelaunch.services.hosting_client import HostingAPIError
from sitelaunch.services.reconciliation_service import poll_once

domains_bp = Blueprint("domains", __name__, url_prefix="/api/domains")

logger = logging.getLogger(__name__)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _field(data, name):
    """Stripped string field; missing or null is ''. Other types are rejected."""
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value.strip()


def _flow_response(result):
    """Connect/launch results: failed flows are upstream failures."""
    if not result["success"]:
        return jsonify(ok=False, **result), 502
    return jsonify(ok=True, **result)


@domains_bp.route("/connect", methods=["POST"])
def connect():
    """Body: domain, lead_id, agency_id, business_name, user_id,
    html_content (optional), connection_method (manual | dns_provider)."""
    data = _json_body()
    try:
        result = connect_domain(
            domain=_field(data, "domain"),
            lead_id=_field(data, "lead_id"),
            agency_id=_field(data, "agency_id"),
            business_name=_field(data, "business_name"),
            user_id=data.get("user_id"),
            html_content=data.get("html_content"),
            connection_method=data.get("connection_method") or "manual",
        )
    except ConnectionConflictError as e:
        return jsonify(
            ok=False,
            error=str(e),
            site_id=e.site_id,
            connection_id=e.connection_id,
        ), 409
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400
    return _flow_response(result)


@domains_bp.route("/launch", methods=["POST"])
def launch():
    """Body: lead_id, agency_id, business_name, html_content, user_id."""
    data = _json_body()
    try:
        result = launch_site(
            lead_id=_field(data, "lead_id"),
            agency_id=_field(data, "agency_id"),
            business_name=_field(data, "business_name"),
            html_content=data.get("html_content"),
            user_id=data.get("user_id"),
        )
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400
    return _flow_response(result)


@domains_bp.route("/<connection_id>", methods=["GET"])
def connection_detail(connection_id):
    connection = get_connection(connection_id)
    if connection is None:
        return jsonify(ok=False, error="Domain connection not found."), 404
    return jsonify(ok=True, **connection)


@domains_bp.route("/<connection_id>/poll", methods=["POST"])
def poll(connection_id):
    if get_connection(connection_id) is None:
        return jsonify(ok=False, error="Domain connection not found."), 404
    return jsonify(ok=True, **poll_once(connection_id))


@domains_bp.route("/<connection_id>/disconnect", methods=["POST"])
def disconnect(connection_id):
    data = _json_body()
    try:
        result = disconnect_domain(connection_id, actor_id=data.get("user_id"))
    except LookupError as e:
        return jsonify(ok=False, error=str(e)), 404
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400
    except HostingAPIError as e:
        logger.error(f"Disconnect of {connection_id} failed: {e}")
        return jsonify(ok=False, error=f"Hosting provider error: {e.message}"), 502
    return jsonify(ok=True, **result)


@domains_bp.route("/<connection_id>/configure-dns", methods=["POST"])
def configure_dns(connection_id):
    """Body: include_www (default true), user_id."""
    data = _json_body()
    try:
        result = dns_provider_service.configure_dns(
            connection_id,
            include_www=data.get("include_www", True),
            actor_id=data.get("user_id"),
        )
    except LookupError as e:
        return jsonify(ok=False, error=str(e)), 404
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400

    if not result["success"]:
        return jsonify(ok=False, **result), 502
    return jsonify(ok=True, **result)


@domains_bp.route("/<connection_id>/verify-ownership", methods=["POST"])
def verify_ownership(connection_id):
    data = _json_body()
    try:
        result = dns_provider_service.verify_ownership(
            connection_id, actor_id=data.get("user_id")
        )
    except LookupError as e:
        return jsonify(ok=False, error=str(e)), 404
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400
    return jsonify(ok=True, **result)
