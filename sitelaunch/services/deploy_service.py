"""Deploy service: publishes an HTML page as a new hosted release.

Pipeline (strictly sequential, any failure aborts before release):
  1. create a version with the default hosting config
  2. gzip + hash every file into a path -> sha256 manifest
  3. offer the manifest; the provider answers with the hashes it lacks
  4. upload exactly those blobs
  5. finalize the version, then release it

Identical content produces identical bytes and hashes, so a redeploy of
unchanged content uploads nothing.
"""

import gzip
import hashlib
import logging
from datetime import datetime, timezone

from flask import current_app

from sitelaunch.extensions import db
from sitelaunch.models.release import SiteRelease
from sitelaunch.models.site import ClientSite
from sitelaunch.services.audit_service import log_audit
from sitelaunch.services.hosting_client import HostingAPIError, get_hosting_client
from sitelaunch.services.retry import retry_call
from sitelaunch.services.site_registry import default_site_url

logger = logging.getLogger(__name__)

ROBOTS_TXT = "User-agent: *\nAllow: /"

IMMUTABLE_CACHE = {"Cache-Control": "public, max-age=31536000, immutable"}

DEFAULT_HOSTING_CONFIG = {
    "cleanUrls": True,
    "trailingSlashBehavior": "REMOVE",
    "headers": [
        {"glob": "**/*.@(js|css)", "headers": IMMUTABLE_CACHE},
        {"glob": "**/*.@(jpg|jpeg|gif|png|svg|webp|ico)", "headers": IMMUTABLE_CACHE},
        {
            "glob": "**",
            "headers": {
                "X-Content-Type-Options": "nosniff",
                "X-Frame-Options": "DENY",
                "X-XSS-Protection": "1; mode=block",
            },
        },
    ],
}


class DeploymentError(Exception):
    """The provider answered in a way the pipeline cannot continue from."""


# ──────────────────────────────────────────────
# Manifest
# ──────────────────────────────────────────────

def gzip_bytes(content):
    """Gzip with a fixed timestamp so equal input gives equal output."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return gzip.compress(content, mtime=0)


def build_file_manifest(html_content):
    """Return (files, blobs): path -> sha256 hex, and sha256 hex -> gzip bytes."""
    sources = {
        "/index.html": html_content,
        "/robots.txt": ROBOTS_TXT,
    }
    files = {}
    blobs = {}
    for path, content in sources.items():
        compressed = gzip_bytes(content)
        digest = hashlib.sha256(compressed).hexdigest()
        files[path] = digest
        blobs[digest] = compressed
    return files, blobs


def _last_segment(name):
    return (name or "").rsplit("/", 1)[-1]


# ──────────────────────────────────────────────
# Pipeline
# ──────────────────────────────────────────────

def deploy_to_site(site_id, html_content, message=None):
    """Run the five-step pipeline once.

    Returns dict with keys: success, site_url, version_id, release_id,
    error, retryable. A failure never leaves a released version behind.
    """
    client = get_hosting_client()
    files, blobs = build_file_manifest(html_content)

    release = SiteRelease(site_id=site_id, files=files, message=message, status="created")
    db.session.add(release)
    db.session.commit()
    release_pk = release.id

    try:
        version = client.create_version(site_id, DEFAULT_HOSTING_CONFIG)
        version_name = version.get("name")
        if not version_name:
            raise DeploymentError(f"Provider returned no version name for {site_id}")
        release.version_name = version_name
        release.version_id = _last_segment(version_name)
        db.session.commit()

        populated = client.populate_files(version_name, files)
        required = populated["upload_required_hashes"]
        if required and not populated["upload_url"]:
            raise DeploymentError("Provider requested uploads without an upload URL")

        for file_hash in required:
            if file_hash not in blobs:
                raise DeploymentError(f"Provider requested unknown file hash {file_hash}")
            client.upload_file(populated["upload_url"], file_hash, blobs[file_hash])
        release.uploaded_hashes = list(required)
        logger.info(
            f"Uploaded {len(required)}/{len(files)} file(s) for {release.version_id}"
        )

        client.finalize_version(version_name)
        release.status = "finalized"
        release.finalized_at = datetime.now(timezone.utc)
        db.session.commit()

        released = client.create_release(site_id, version_name, message)
        release.release_id = _last_segment(released.get("name"))
        release.status = "released"
        release.released_at = datetime.now(timezone.utc)
        db.session.commit()

    except (HostingAPIError, DeploymentError) as e:
        release.status = "failed"
        release.error_message = str(e)
        db.session.commit()
        logger.warning(f"Deploy to {site_id} failed: {e}")
        return {
            "success": False,
            "site_url": None,
            "version_id": release.version_id,
            "release_id": None,
            "error": str(e),
            "retryable": isinstance(e, HostingAPIError) and e.is_transient,
        }
    except Exception as e:
        db.session.rollback()
        release = db.session.get(SiteRelease, release_pk, populate_existing=True)
        release.status = "failed"
        release.error_message = str(e)
        db.session.commit()
        logger.exception(f"Deploy to {site_id} failed unexpectedly")
        return {
            "success": False,
            "site_url": None,
            "version_id": release.version_id,
            "release_id": None,
            "error": str(e),
            "retryable": False,
        }

    logger.info(f"Deployed {site_id}: version {release.version_id}, release {release.release_id}")
    return {
        "success": True,
        "site_url": default_site_url(site_id),
        "version_id": release.version_id,
        "release_id": release.release_id,
        "error": None,
        "retryable": False,
    }


class _DeployFailed(Exception):
    def __init__(self, result):
        super().__init__(result["error"])
        self.result = result


def deploy_with_retry(site_id, html_content, message=None):
    """Rerun the whole pipeline while failures are transient."""
    config = current_app.config

    def attempt(n):
        result = deploy_to_site(site_id, html_content, message or f"Deployment attempt {n}")
        if not result["success"]:
            raise _DeployFailed(result)
        return result

    try:
        return retry_call(
            attempt,
            max_attempts=config["DEPLOY_MAX_ATTEMPTS"],
            should_retry=lambda e: isinstance(e, _DeployFailed) and e.result["retryable"],
            base_delay=config["RETRY_BASE_DELAY"],
            max_delay=config["RETRY_MAX_DELAY"],
            label=f"Deploy {site_id}",
        )
    except _DeployFailed as e:
        return e.result


def deploy(site_id, html_content, message=None, actor_id=None):
    """Deploy to an existing site and move its release pointers.

    On failure the site goes to ``error`` and keeps its previous version
    and release ids.
    """
    if not html_content:
        raise ValueError("html_content is required")

    site = db.session.get(ClientSite, site_id)
    if not site:
        raise LookupError(f"Site {site_id} not found")

    site.status = "deploying"
    db.session.commit()

    result = deploy_with_retry(site_id, html_content, message)

    site = db.session.get(ClientSite, site_id, populate_existing=True)
    if result["success"]:
        domain_pending = site.custom_domain and site.domain_connection_status != "connected"
        site.status = "domain_pending" if domain_pending else "active"
        site.last_deployed_at = datetime.now(timezone.utc)
        site.current_version_id = result["version_id"]
        site.current_release_id = result["release_id"]
        log_audit(
            "site.deployed",
            resource="site",
            resource_id=site_id,
            actor_id=actor_id,
            metadata={"version_id": result["version_id"], "release_id": result["release_id"]},
        )
    else:
        site.status = "error"
    db.session.commit()
    return result
