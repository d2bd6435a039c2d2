"""Shared test fixtures for the sitelaunch test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no retry delays)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- hosting: in-memory hosting provider installed as the shared client
- seed_site: an active site with one release
"""

import hashlib
from datetime import datetime, timezone

import pytest

from sitelaunch import create_app
from sitelaunch.extensions import db as _db
from sitelaunch.models.site import ClientSite
from sitelaunch.services import hosting_client
from sitelaunch.services.hosting_client import HostingAPIError


class FakeHostingClient:
    """In-memory hosting provider.

    Stores blobs by hash so populate_files only asks for content it has
    never seen. ``fail_on[method]`` holds exceptions raised, in order, by
    the next calls to that method.
    """

    def __init__(self):
        self.project_id = "test-project"
        self.sites = {}
        self.versions = {}
        self.releases = []
        self.stored_hashes = set()
        self.uploads = []
        self.custom_domains = {}
        self.calls = []
        self.fail_on = {}
        self._counter = 0

    def _call(self, method):
        self.calls.append(method)
        errors = self.fail_on.get(method)
        if errors:
            raise errors.pop(0)

    def _next(self):
        self._counter += 1
        return self._counter

    def count(self, method):
        return self.calls.count(method)

    # --- sites ---

    def get_site(self, site_id):
        self._call("get_site")
        return self.sites.get(site_id)

    def create_site(self, site_id, labels=None):
        self._call("create_site")
        if site_id in self.sites:
            raise HostingAPIError("Site already exists", 409, "ALREADY_EXISTS")
        self.sites[site_id] = {
            "name": f"projects/test-project/sites/{site_id}",
            "defaultUrl": f"https://{site_id}.web.app",
            "labels": labels or {},
        }
        return self.sites[site_id]

    # --- versions & releases ---

    def create_version(self, site_id, config):
        self._call("create_version")
        name = f"sites/{site_id}/versions/v{self._next()}"
        self.versions[name] = {"config": config, "files": {}, "status": "CREATED"}
        return {"name": name, "status": "CREATED"}

    def populate_files(self, version_name, files):
        self._call("populate_files")
        self.versions[version_name]["files"] = dict(files)
        required = sorted({h for h in files.values() if h not in self.stored_hashes})
        return {
            "upload_required_hashes": required,
            "upload_url": f"https://upload.hosting.test/upload/{version_name}",
        }

    def upload_file(self, upload_url, file_hash, content):
        self._call("upload_file")
        assert hashlib.sha256(content).hexdigest() == file_hash
        self.stored_hashes.add(file_hash)
        self.uploads.append(file_hash)

    def finalize_version(self, version_name):
        self._call("finalize_version")
        self.versions[version_name]["status"] = "FINALIZED"
        return {"name": version_name, "status": "FINALIZED"}

    def create_release(self, site_id, version_name, message=None):
        self._call("create_release")
        assert self.versions[version_name]["status"] == "FINALIZED"
        release = {
            "name": f"sites/{site_id}/releases/r{self._next()}",
            "version": version_name,
            "message": message,
        }
        self.releases.append(release)
        return release

    # --- custom domains ---

    def create_custom_domain(self, site_id, domain):
        self._call("create_custom_domain")
        key = (site_id, domain)
        if key in self.custom_domains:
            raise HostingAPIError("Custom domain already exists", 409, "ALREADY_EXISTS")
        self.custom_domains[key] = {
            "name": f"projects/test-project/sites/{site_id}/customDomains/{domain}",
            "domain": domain,
            "hostState": "HOST_UNHOSTED",
            "ownershipState": {"status": "OWNERSHIP_MISSING"},
            "certPreference": "GROUPED",
        }
        return self.custom_domains[key]

    def get_custom_domain(self, site_id, domain):
        self._call("get_custom_domain")
        return self.custom_domains.get((site_id, domain))

    def delete_custom_domain(self, site_id, domain):
        self._call("delete_custom_domain")
        self.custom_domains.pop((site_id, domain), None)

    def set_domain_state(self, site_id, domain, host, ownership, cert=None):
        """Move a registered custom domain to the given provider states."""
        payload = self.custom_domains.setdefault((site_id, domain), {"domain": domain})
        payload["hostState"] = host
        payload["ownershipState"] = {"status": ownership}
        if cert:
            payload["cert"] = {"state": cert, "type": "GROUPED"}
        else:
            payload.pop("cert", None)


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def hosting(monkeypatch):
    """Install a fresh in-memory provider as the shared hosting client."""
    fake = FakeHostingClient()
    monkeypatch.setattr(hosting_client, "_client", fake)
    return fake


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_site(app, db_session, hosting):
    """An active site that exists remotely and locally.

    Returns a dict of plain values so tests can use them across sessions.
    """
    site_id = "rms-test-pizza-lead0001"
    hosting.sites[site_id] = {
        "name": f"projects/test-project/sites/{site_id}",
        "defaultUrl": f"https://{site_id}.web.app",
    }
    site = ClientSite(
        id=site_id,
        agency_id="agency-1",
        lead_id="lead0001",
        user_id="user-1",
        business_name="Test Pizza",
        default_url=f"https://{site_id}.web.app",
        status="active",
        current_version_id="v0",
        current_release_id="r0",
        last_deployed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    _db.session.add(site)
    _db.session.commit()
    return {
        "site_id": site_id,
        "agency_id": "agency-1",
        "lead_id": "lead0001",
        "user_id": "user-1",
        "business_name": "Test Pizza",
    }
