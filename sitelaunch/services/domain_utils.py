"""Domain name cleanup, validation and the DNS records a customer must add."""

import re
import secrets

HOSTING_IPV4 = ["199.36.158.100", "151.101.1.195"]
HOSTING_IPV6 = ["2600:1901:0:1::"]
DNS_RECORD_TTL = 3600
VERIFICATION_TXT_PREFIX = "hosting-site-verification="

# Placeholder domains people paste from docs and forms.
BLOCKED_DOMAINS = ["localhost", "example.com", "test.com", "invalid.com"]

_DOMAIN_RE = re.compile(
    r"^(?=.{4,253}$)"
    r"(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+"
    r"[a-z]{2,63}$"
)


def normalize_domain(domain):
    """Lowercase and strip scheme, ``www.``, path, port and trailing dot.

    "HTTPS://www.Example-Biz.com:443/about" -> "example-biz.com"
    """
    domain = (domain or "").strip().lower()
    if "://" in domain:
        domain = domain.split("://", 1)[1]
    domain = domain.split("/", 1)[0]
    domain = domain.split("?", 1)[0]
    domain = domain.split(":", 1)[0]
    domain = domain.rstrip(".")
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def validate_domain(domain):
    """Return an error message for an unusable domain, or None if it is fine."""
    if not domain:
        return "Domain is required"
    if not _DOMAIN_RE.match(domain):
        return f"Invalid domain format: {domain}"
    for blocked in BLOCKED_DOMAINS:
        if domain == blocked or domain.endswith(f".{blocked}"):
            return f"Domain {domain} cannot be used"
    return None


def generate_verification_token():
    return secrets.token_hex(16)


def desired_txt_value(custom_domain):
    """The ownership TXT value the provider asks for, if it reports one."""
    custom_domain = custom_domain or {}
    record_sets = []
    record_sets += (custom_domain.get("ownershipState") or {}).get("desired") or []
    record_sets += (custom_domain.get("requiredDnsUpdates") or {}).get("desired") or []
    for record_set in record_sets:
        for record in record_set.get("records") or []:
            if record.get("type") == "TXT" and record.get("rrdatas"):
                return record["rrdatas"][0]
    return None


def build_dns_records(site_id, txt_value):
    """Records the customer adds at their registrar to point the domain here."""

    def record(record_type, name, value):
        return {
            "type": record_type,
            "name": name,
            "value": value,
            "ttl": DNS_RECORD_TTL,
            "status": "pending",
        }

    records = [record("TXT", "@", txt_value)]
    records += [record("A", "@", ip) for ip in HOSTING_IPV4]
    records += [record("AAAA", "@", ip) for ip in HOSTING_IPV6]
    records.append(record("CNAME", "www", f"{site_id}.web.app"))
    return records
