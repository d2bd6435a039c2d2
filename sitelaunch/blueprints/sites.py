"""Sites blueprint: /api/sites/*

Route Map:
  POST /api/sites                   Ensure the hosting site for a lead exists
  GET  /api/sites/<site_id>         Site record
  POST /api/sites/<site_id>/deploy  Publish HTML as a new release

Callers are authenticated upstream; user_id is taken from the body.
Returns: { ok: true, ... } or { ok: false, error: "..." }
"""

import logging

from flask import Blueprint, jsonify, request

from sitelaunch.services.deploy_service import deploy
from sitelaunch.services.hosting_client import HostingAPIError
from sitelaunch.services.site_registry import ensure_site, get_site

sites_bp = Blueprint("sites", __name__, url_prefix="/api/sites")

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


@sites_bp.route("", methods=["POST"])
def create_site():
    """Body: business_name, lead_id, agency_id, user_id (optional)."""
    data = _json_body()
    try:
        result = ensure_site(
            business_name=_field(data, "business_name"),
            lead_id=_field(data, "lead_id"),
            agency_id=_field(data, "agency_id"),
            user_id=data.get("user_id"),
        )
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400
    except HostingAPIError as e:
        logger.error(f"Site creation failed: {e}")
        return jsonify(ok=False, error=f"Hosting provider error: {e.message}"), 502

    site = get_site(result["site_id"])
    return jsonify(ok=True, is_new=result["is_new"], **site.to_dict())


@sites_bp.route("/<site_id>", methods=["GET"])
def site_detail(site_id):
    site = get_site(site_id)
    if not site:
        return jsonify(ok=False, error="Site not found."), 404
    return jsonify(ok=True, **site.to_dict())


@sites_bp.route("/<site_id>/deploy", methods=["POST"])
def deploy_site(site_id):
    """Body: html_content, message (optional), user_id (optional)."""
    data = _json_body()
    try:
        result = deploy(
            site_id,
            data.get("html_content"),
            message=data.get("message"),
            actor_id=data.get("user_id"),
        )
    except LookupError as e:
        return jsonify(ok=False, error=str(e)), 404
    except ValueError as e:
        return jsonify(ok=False, error=str(e)), 400

    if not result["success"]:
        return jsonify(ok=False, error=result["error"]), 502
    result.pop("retryable", None)
    return jsonify(ok=True, site_id=site_id, **result)
