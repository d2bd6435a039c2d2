"""Tests for DNS provider automation and ownership checks.

Covers:
- GoDaddy record translation
- configure_dns success and failure paths
- configure_dns refuses connections that are not waiting on DNS
- Error message mapping
- TXT lookup over DNS-over-HTTPS
- verify_ownership bookkeeping
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from sitelaunch.extensions import db
from sitelaunch.models.audit import AuditEvent
from sitelaunch.models.domain_connection import DomainConnection
from sitelaunch.models.site import ClientSite
from sitelaunch.services.connection_service import connect_domain
from sitelaunch.services.dns_provider_service import (
    configure_dns,
    lookup_txt_records,
    to_godaddy_records,
    verify_ownership,
)


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = payload if payload is not None else {}
    return resp


@pytest.fixture
def connection_id(app, hosting):
    result = connect_domain(
        domain="example-biz.com",
        lead_id="lead-001",
        agency_id="agency-1",
        business_name="Example Biz",
        user_id="user-1",
    )
    return result["connection_id"]


def _connection(connection_id):
    return db.session.get(DomainConnection, connection_id, populate_existing=True)


class TestGodaddyRecords:
    RECORDS = [
        {"type": "TXT", "name": "@", "value": "hosting-site-verification=abc", "ttl": 3600},
        {"type": "A", "name": "@", "value": "199.36.158.100", "ttl": 3600},
        {"type": "CNAME", "name": "www", "value": "rms-a-b.web.app", "ttl": 3600},
    ]

    def test_translates_records(self):
        records = to_godaddy_records(self.RECORDS)
        assert records[0] == {
            "type": "TXT", "name": "@", "data": "hosting-site-verification=abc", "ttl": 600,
        }
        assert len(records) == 3

    def test_skips_www_when_asked(self):
        records = to_godaddy_records(self.RECORDS, include_www=False)
        assert [r["type"] for r in records] == ["TXT", "A"]


class TestConfigureDns:
    @patch("sitelaunch.services.dns_provider_service.requests.patch")
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_success(self, mock_get, mock_patch, app, connection_id):
        mock_get.return_value = _response(200, {"domain": "example-biz.com"})
        mock_patch.return_value = _response(200)

        result = configure_dns(connection_id, actor_id="user-1")

        assert result["success"] is True
        assert result["estimated_propagation_minutes"] == 15
        assert len(result["records_added"]) == 5
        url = mock_patch.call_args[0][0]
        assert url == "https://dns.test/v1/domains/example-biz.com/records"
        headers = mock_patch.call_args[1]["headers"]
        assert headers["Authorization"] == "sso-key gd_key_test:gd_secret_test"

        connection = _connection(connection_id)
        assert connection.status == "dns_propagating"
        assert connection.connection_method == "dns_provider"
        assert connection.dns_provider == "godaddy"
        assert connection.dns_configured_at is not None
        assert AuditEvent.query.filter_by(action="domain.dns_configured").count() == 1

    @patch("sitelaunch.services.dns_provider_service.requests.patch")
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_domain_not_in_account(self, mock_get, mock_patch, app, connection_id):
        mock_get.return_value = _response(404)

        result = configure_dns(connection_id)

        assert result["success"] is False
        assert "not in the GoDaddy account" in result["error"]
        mock_patch.assert_not_called()
        connection = _connection(connection_id)
        assert connection.status == "error"
        assert connection.error_count == 1
        site = db.session.get(ClientSite, connection.site_id, populate_existing=True)
        assert site.status == "error"
        assert site.domain_connection_status == "error"

    @pytest.mark.parametrize("status", ["disconnected", "verification_failed", "connected"])
    @patch("sitelaunch.services.dns_provider_service.requests.patch")
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_settled_connection_is_left_alone(self, mock_get, mock_patch, status,
                                              app, connection_id):
        connection = _connection(connection_id)
        connection.status = status
        db.session.commit()

        with pytest.raises(ValueError, match="waiting on DNS"):
            configure_dns(connection_id)

        mock_get.assert_not_called()
        mock_patch.assert_not_called()
        connection = _connection(connection_id)
        assert connection.status == status
        assert connection.dns_configured_at is None
        assert connection.error_count == 0

    @pytest.mark.parametrize("status_code,payload,expected", [
        (401, {}, "authentication failed"),
        (403, {}, "Access denied"),
        (429, {}, "Rate limited"),
        (422, {"message": "Record data is invalid"}, "Record data is invalid"),
        (500, {}, "GoDaddy API error (500)"),
    ])
    @patch("sitelaunch.services.dns_provider_service.requests.patch")
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_error_mapping(self, mock_get, mock_patch, status_code, payload, expected,
                           app, connection_id):
        mock_get.return_value = _response(200)
        mock_patch.return_value = _response(status_code, payload)

        result = configure_dns(connection_id)

        assert result["success"] is False
        assert expected in result["error"]

    @patch("sitelaunch.services.dns_provider_service.requests.patch")
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_network_error(self, mock_get, mock_patch, app, connection_id):
        mock_get.return_value = _response(200)
        mock_patch.side_effect = requests.exceptions.ConnectionError("reset")

        result = configure_dns(connection_id)

        assert result["success"] is False
        assert "Could not reach GoDaddy" in result["error"]

    def test_missing_credentials(self, app, connection_id, monkeypatch):
        monkeypatch.setitem(app.config, "GODADDY_API_KEY", None)
        with pytest.raises(ValueError):
            configure_dns(connection_id)
        assert _connection(connection_id).status == "pending_dns"

    def test_unknown_connection(self, app):
        with pytest.raises(LookupError):
            configure_dns("conn-missing")


class TestLookupTxtRecords:
    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_strips_quotes(self, mock_get):
        mock_get.return_value = _response(200, {"Answer": [
            {"name": "example-biz.com.", "type": 16, "data": '"hosting-site-verification=abc"'},
            {"name": "example-biz.com.", "type": 16, "data": "v=spf1 -all"},
            {"name": "example-biz.com.", "type": 5, "data": "alias.example.net."},
        ]})

        assert lookup_txt_records("example-biz.com") == [
            "hosting-site-verification=abc",
            "v=spf1 -all",
        ]
        assert mock_get.call_args[1]["params"] == {"name": "example-biz.com", "type": 16}

    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_no_answer(self, mock_get):
        mock_get.return_value = _response(200, {"Status": 3})
        assert lookup_txt_records("example-biz.com") == []

    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_errors_return_empty(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout("slow")
        assert lookup_txt_records("example-biz.com") == []

    @patch("sitelaunch.services.dns_provider_service.requests.get")
    def test_bad_status_returns_empty(self, mock_get):
        mock_get.return_value = _response(502)
        assert lookup_txt_records("example-biz.com") == []


class TestVerifyOwnership:
    def test_verified(self, app, connection_id):
        expected = _connection(connection_id).verification_txt_record

        with patch(
            "sitelaunch.services.dns_provider_service.lookup_txt_records",
            return_value=["v=spf1 -all", expected],
        ):
            result = verify_ownership(connection_id, actor_id="user-1")
            verify_ownership(connection_id)

        assert result == {"verified": True, "expected": expected, "found": ["v=spf1 -all", expected]}
        assert _connection(connection_id).ownership_verified_at is not None
        assert AuditEvent.query.filter_by(action="domain.ownership_verified").count() == 1

    def test_not_yet_published(self, app, connection_id):
        with patch(
            "sitelaunch.services.dns_provider_service.lookup_txt_records", return_value=[]
        ):
            result = verify_ownership(connection_id)

        assert result["verified"] is False
        assert _connection(connection_id).ownership_verified_at is None

    def test_unknown_connection(self, app):
        with pytest.raises(LookupError):
            verify_ownership("conn-missing")
