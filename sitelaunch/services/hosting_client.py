"""Hosting provider client: sites, versions, releases and custom domains.

Thin wrapper over the provider's REST API using ``requests``. Credentials
come from Google Application Default Credentials (``google-auth``); the
access token is refreshed lazily under a lock.

One client per process: ``get_hosting_client()`` builds it on first use
from the app config and hands out the same instance afterwards.
"""

import logging
import threading
from urllib.parse import quote

import google.auth
import google.auth.exceptions
import requests
from flask import current_app
from google.auth.transport.requests import Request

logger = logging.getLogger(__name__)

HOSTING_SCOPES = [
    "https://www.googleapis.com/auth/firebase",
    "https://www.googleapis.com/auth/cloud-platform",
]


class HostingAPIError(Exception):
    """A failed call to the hosting provider.

    ``status_code`` is the HTTP status (0 for network failures) and
    ``status`` the provider's canonical error code, e.g. ``ALREADY_EXISTS``.
    """

    def __init__(self, message, status_code=0, status=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = status

    @property
    def is_already_exists(self):
        return self.status == "ALREADY_EXISTS" or self.status_code == 409

    @property
    def is_not_found(self):
        return self.status == "NOT_FOUND" or self.status_code == 404

    @property
    def is_transient(self):
        """Network errors, throttling and server-side failures."""
        return (
            self.status_code == 0
            or self.status_code == 429
            or self.status_code >= 500
            or self.status in ("UNAVAILABLE", "DEADLINE_EXCEEDED", "RESOURCE_EXHAUSTED")
        )


def is_transient_error(exc):
    """Retry predicate for ``retry_call``."""
    return isinstance(exc, HostingAPIError) and exc.is_transient


# ──────────────────────────────────────────────
# Client
# ──────────────────────────────────────────────

class HostingClient:
    def __init__(self, project_id, api_base, timeout=30, credentials=None, session=None):
        if not project_id:
            raise ValueError("A hosting project id is required")
        self.project_id = project_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._credentials = credentials
        self._token_lock = threading.Lock()
        self._session = session or requests.Session()

    # --- auth ---

    def _access_token(self):
        """Current bearer token.

        Token endpoint outages surface as transient ``HostingAPIError``
        (status_code 0); bad or missing credentials as UNAUTHENTICATED.
        """
        with self._token_lock:
            try:
                if self._credentials is None:
                    self._credentials, _ = google.auth.default(scopes=HOSTING_SCOPES)
                if not self._credentials.valid:
                    self._credentials.refresh(Request())
                    logger.info("Refreshed hosting provider access token")
            except google.auth.exceptions.TransportError as e:
                raise HostingAPIError(f"Token refresh failed: {e}") from e
            except (
                google.auth.exceptions.RefreshError,
                google.auth.exceptions.DefaultCredentialsError,
            ) as e:
                raise HostingAPIError(
                    f"Hosting credentials rejected: {e}",
                    status_code=401,
                    status="UNAUTHENTICATED",
                ) from e
            return self._credentials.token

    # --- transport ---

    def _request(self, method, url, json=None, data=None, content_type="application/json"):
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        if json is not None or data is not None:
            headers["Content-Type"] = content_type
        try:
            resp = self._session.request(
                method, url, json=json, data=data, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise HostingAPIError(f"{method} {url} failed: {e}") from e

        if resp.status_code >= 400:
            status = None
            message = resp.text
            try:
                error = resp.json().get("error", {})
                status = error.get("status")
                message = error.get("message") or message
            except ValueError:
                pass
            raise HostingAPIError(
                f"{method} {url} returned {resp.status_code}: {message}",
                status_code=resp.status_code,
                status=status,
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    def _site_path(self, site_id):
        return f"{self.api_base}/projects/{self.project_id}/sites/{site_id}"

    # --- sites ---

    def get_site(self, site_id):
        """Return the remote site, or None if the provider has no such site."""
        try:
            return self._request("GET", self._site_path(site_id))
        except HostingAPIError as e:
            if e.is_not_found:
                return None
            raise

    def create_site(self, site_id, labels=None):
        url = f"{self.api_base}/projects/{self.project_id}/sites?siteId={quote(site_id)}"
        return self._request("POST", url, json={"labels": labels or {}})

    # --- versions & releases ---

    def create_version(self, site_id, config):
        return self._request(
            "POST", f"{self._site_path(site_id)}/versions", json={"config": config}
        )

    def populate_files(self, version_name, files):
        """Offer a path -> hash manifest; returns the hashes still needed."""
        result = self._request(
            "POST", f"{self.api_base}/{version_name}:populateFiles", json={"files": files}
        )
        return {
            "upload_required_hashes": result.get("uploadRequiredHashes") or [],
            "upload_url": result.get("uploadUrl"),
        }

    def upload_file(self, upload_url, file_hash, content):
        self._request(
            "POST",
            f"{upload_url}/{file_hash}",
            data=content,
            content_type="application/octet-stream",
        )

    def finalize_version(self, version_name):
        return self._request(
            "PATCH",
            f"{self.api_base}/{version_name}?update_mask=status",
            json={"status": "FINALIZED"},
        )

    def create_release(self, site_id, version_name, message=None):
        url = f"{self._site_path(site_id)}/releases?versionName={quote(version_name, safe='')}"
        return self._request("POST", url, json={"message": message or "Deployed"})

    # --- custom domains ---

    def create_custom_domain(self, site_id, domain):
        url = (
            f"{self._site_path(site_id)}/customDomains"
            f"?customDomainId={quote(domain, safe='')}"
        )
        return self._request("POST", url, json={"certPreference": "GROUPED"})

    def get_custom_domain(self, site_id, domain):
        """Return the remote registration, or None if it does not exist."""
        url = f"{self._site_path(site_id)}/customDomains/{quote(domain, safe='')}"
        try:
            return self._request("GET", url)
        except HostingAPIError as e:
            if e.is_not_found:
                return None
            raise

    def delete_custom_domain(self, site_id, domain):
        """Remove the registration. A registration that is already gone is fine."""
        url = f"{self._site_path(site_id)}/customDomains/{quote(domain, safe='')}"
        try:
            self._request("DELETE", url)
        except HostingAPIError as e:
            if not e.is_not_found:
                raise
            logger.info(f"Custom domain {domain} already removed from {site_id}")


# ──────────────────────────────────────────────
# Process-wide instance
# ──────────────────────────────────────────────

_client = None
_client_lock = threading.Lock()


def get_hosting_client():
    """Return the shared HostingClient, creating it on first use."""
    global _client

    if _client is None:
        with _client_lock:
            if _client is None:
                config = current_app.config
                _client = HostingClient(
                    project_id=config["HOSTING_PROJECT_ID"],
                    api_base=config["HOSTING_API_BASE"],
                    timeout=config.get("HOSTING_HTTP_TIMEOUT", 30),
                )
                logger.info(
                    f"Hosting client initialised for project {_client.project_id}"
                )
    return _client
