"""Tests for domain cleanup, validation and DNS instructions."""

import pytest

from sitelaunch.services.domain_utils import (
    HOSTING_IPV4,
    HOSTING_IPV6,
    build_dns_records,
    desired_txt_value,
    normalize_domain,
    validate_domain,
)


class TestNormalizeDomain:
    @pytest.mark.parametrize("raw,expected", [
        ("Example-Biz.com", "example-biz.com"),
        ("  https://www.example-biz.com/about?x=1 ", "example-biz.com"),
        ("http://shop.example-biz.com:8080", "shop.example-biz.com"),
        ("example-biz.com.", "example-biz.com"),
        ("WWW.Mario-Pizza.co.uk", "mario-pizza.co.uk"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_domain(raw) == expected


class TestValidateDomain:
    @pytest.mark.parametrize("domain", [
        "example-biz.com",
        "mariospizza.io",
        "shop.mario-pizza.co.uk",
        "a1.dev",
    ])
    def test_valid(self, domain):
        assert validate_domain(domain) is None

    @pytest.mark.parametrize("domain", [
        "",
        "localhost",
        "nodot",
        "-bad.com",
        "bad-.com",
        "under_score.com",
        "numeric.123",
        "two..dots.com",
    ])
    def test_invalid_format(self, domain):
        assert validate_domain(domain) is not None

    @pytest.mark.parametrize("domain", [
        "example.com", "test.com", "invalid.com", "www2.example.com",
    ])
    def test_placeholder_domains_rejected(self, domain):
        assert "cannot be used" in validate_domain(domain)


class TestDnsRecords:
    def test_record_set(self):
        records = build_dns_records("rms-biz-abc12345", "hosting-site-verification=tok")
        by_type = {}
        for record in records:
            by_type.setdefault(record["type"], []).append(record)

        assert len(by_type["TXT"]) == 1
        assert by_type["TXT"][0]["value"] == "hosting-site-verification=tok"
        assert [r["value"] for r in by_type["A"]] == HOSTING_IPV4
        assert [r["value"] for r in by_type["AAAA"]] == HOSTING_IPV6
        assert len(by_type["A"]) + len(by_type["AAAA"]) >= 2
        assert by_type["CNAME"] == [{
            "type": "CNAME",
            "name": "www",
            "value": "rms-biz-abc12345.web.app",
            "ttl": 3600,
            "status": "pending",
        }]
        assert all(r["status"] == "pending" for r in records)

    def test_desired_txt_from_provider(self):
        payload = {
            "requiredDnsUpdates": {
                "desired": [{
                    "domainName": "example-biz.com",
                    "records": [
                        {"type": "A", "rrdatas": ["199.36.158.100"]},
                        {"type": "TXT", "rrdatas": ["hosting-site=abc"]},
                    ],
                }],
            },
        }
        assert desired_txt_value(payload) == "hosting-site=abc"

    def test_no_desired_txt(self):
        assert desired_txt_value({"ownershipState": {"status": "OWNERSHIP_MISSING"}}) is None
