"""Tests for the site registry.

Covers:
- Deterministic site id generation
- Idempotent ensure_site (local hit, remote-only, create)
- ALREADY_EXISTS treated as success
- Retry of transient creation failures
"""

import pytest

from sitelaunch.extensions import db
from sitelaunch.models.audit import AuditEvent
from sitelaunch.models.site import ClientSite
from sitelaunch.services.hosting_client import HostingAPIError
from sitelaunch.services.site_registry import ensure_site, generate_site_id, update_site


class TestGenerateSiteId:
    @pytest.mark.parametrize("name,lead,expected", [
        ("Joe's Plumbing", "AbC123xyz789", "rms-joes-plumbing-abc123xy"),
        ("Mario & Luigi   Pizza!!", "lead-42", "rms-mario-luigi-piz-lead42"),
        ("   ", "XYZ98765", "rms-site-xyz98765"),
        ("123 Bakery", "q1w2e3r4t5", "rms-123-bakery-q1w2e3r4"),
        ("Über Café", "abc", "rms-ber-caf-abc"),
    ])
    def test_examples(self, name, lead, expected):
        assert generate_site_id(name, lead) == expected

    def test_is_deterministic(self):
        assert generate_site_id("Example Biz", "lead-1") == generate_site_id("Example Biz", "lead-1")

    def test_respects_provider_limits(self):
        site_id = generate_site_id("A Really Very Long Business Name Incorporated", "abcdefghijkl")
        assert len(site_id) <= 30
        assert site_id[0].isalpha()
        assert not site_id.endswith("-")
        assert "--" not in site_id

    def test_lead_id_required(self):
        with pytest.raises(ValueError):
            generate_site_id("Biz", "---")


class TestEnsureSite:
    def test_creates_new_site(self, app, hosting):
        result = ensure_site("Example Biz", "lead-001", "agency-1", "user-1")

        assert result == {
            "site_id": "rms-example-biz-lead001",
            "is_new": True,
            "default_url": "https://rms-example-biz-lead001.web.app",
        }
        assert hosting.sites["rms-example-biz-lead001"]["labels"] == {
            "agency-id": "agency-1",
            "lead-id": "lead-001",
            "created-by": "user-1",
        }
        site = db.session.get(ClientSite, "rms-example-biz-lead001")
        assert site.status == "creating"
        assert site.site_type == "production"
        assert AuditEvent.query.filter_by(action="site.created").count() == 1

    def test_second_call_is_idempotent(self, app, hosting):
        ensure_site("Example Biz", "lead-001", "agency-1", "user-1")
        again = ensure_site("Example Biz", "lead-001", "agency-1", "user-1")

        assert again["is_new"] is False
        assert again["site_id"] == "rms-example-biz-lead001"
        assert hosting.count("create_site") == 1
        assert ClientSite.query.count() == 1

    def test_remote_only_site_restores_local_record(self, app, hosting):
        hosting.sites["rms-example-biz-lead001"] = {
            "defaultUrl": "https://rms-example-biz-lead001.web.app",
        }
        result = ensure_site("Example Biz", "lead-001", "agency-1")

        assert result["is_new"] is False
        assert hosting.count("create_site") == 0
        site = db.session.get(ClientSite, "rms-example-biz-lead001")
        assert site.status == "active"

    def test_already_exists_is_success(self, app, hosting):
        hosting.fail_on["create_site"] = [
            HostingAPIError("exists", 409, "ALREADY_EXISTS"),
        ]
        result = ensure_site("Example Biz", "lead-001", "agency-1")

        assert result["site_id"] == "rms-example-biz-lead001"
        assert hosting.count("create_site") == 1
        assert db.session.get(ClientSite, "rms-example-biz-lead001") is not None

    def test_transient_failures_are_retried(self, app, hosting):
        hosting.fail_on["create_site"] = [
            HostingAPIError("unavailable", 503, "UNAVAILABLE"),
            HostingAPIError("timeout", 0),
        ]
        result = ensure_site("Example Biz", "lead-001", "agency-1")

        assert result["is_new"] is True
        assert hosting.count("create_site") == 3

    def test_exhausted_retries_raise(self, app, hosting):
        hosting.fail_on["create_site"] = [
            HostingAPIError("unavailable", 503, "UNAVAILABLE") for _ in range(3)
        ]
        with pytest.raises(HostingAPIError):
            ensure_site("Example Biz", "lead-001", "agency-1")
        assert hosting.count("create_site") == 3
        assert ClientSite.query.count() == 0

    def test_validation_errors_are_not_retried(self, app, hosting):
        hosting.fail_on["create_site"] = [
            HostingAPIError("bad id", 400, "INVALID_ARGUMENT"),
        ]
        with pytest.raises(HostingAPIError):
            ensure_site("Example Biz", "lead-001", "agency-1")
        assert hosting.count("create_site") == 1

    def test_missing_fields(self, app):
        with pytest.raises(ValueError):
            ensure_site("", "lead-001", "agency-1")


class TestUpdateSite:
    def test_updates_fields(self, app, seed_site):
        site = update_site(seed_site["site_id"], status="error")
        assert site.status == "error"

    def test_unknown_site(self, app):
        assert update_site("rms-nope-1", status="error") is None
