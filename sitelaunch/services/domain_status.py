"""Custom-domain status mapping and poll policy.

Pure functions only. The provider reports three independent states for a
custom domain (ownership proof, host binding, certificate); this module
folds them into one connection status with a fixed precedence: ownership
problems first, then host binding, and only then the certificate.
"""

# --- Provider states ---
OWNERSHIP_ACTIVE = "OWNERSHIP_ACTIVE"
OWNERSHIP_PENDING = "OWNERSHIP_PENDING"
OWNERSHIP_STATUSES = [
    "OWNERSHIP_STATUS_UNSPECIFIED",
    "OWNERSHIP_MISSING",
    "OWNERSHIP_UNREACHABLE",
    "OWNERSHIP_MISMATCH",
    "OWNERSHIP_CONFLICT",
    OWNERSHIP_PENDING,
    OWNERSHIP_ACTIVE,
]

HOST_ACTIVE = "HOST_ACTIVE"
HOST_CONFLICT = "HOST_CONFLICT"
HOST_STATES = [
    "HOST_STATE_UNSPECIFIED",
    "HOST_UNHOSTED",
    "HOST_UNREACHABLE",
    "HOST_MISMATCH",
    HOST_CONFLICT,
    HOST_ACTIVE,
]

CERT_STATES = [
    "CERT_STATE_UNSPECIFIED",
    "CERT_PREPARING",
    "CERT_VALIDATING",
    "CERT_PROPAGATING",
    "CERT_ACTIVE",
    "CERT_EXPIRING_SOON",
    "CERT_EXPIRED",
]
# Expiring/expired certificates still serve the domain; renewal is the
# provider's job and the raw state stays visible on the connection.
CERT_SERVING = ("CERT_ACTIVE", "CERT_EXPIRING_SOON", "CERT_EXPIRED")
CERT_IN_PROGRESS = ("CERT_VALIDATING", "CERT_PROPAGATING")

# --- Connection phases ---
DNS_PHASE = ("pending_dns", "dns_propagating")
SSL_PHASE = ("pending_ssl", "ssl_provisioning")
# Set while connect_domain()/launch_site() is running; only a crashed flow
# leaves a connection here for long.
STALLED_STATUSES = ("creating_site", "deploying_content")
POLLABLE_STATUSES = [*STALLED_STATUSES, "adding_domain", *DNS_PHASE, *SSL_PHASE]


def map_domain_status(host_state, ownership_status, cert_state):
    """Map the provider's (host, ownership, cert) triple to a connection status."""
    # 1. Ownership proof
    if ownership_status == OWNERSHIP_PENDING:
        return "dns_propagating"
    if ownership_status != OWNERSHIP_ACTIVE:
        return "pending_dns"

    # 2. Host binding
    if host_state == HOST_CONFLICT:
        return "error"
    if host_state != HOST_ACTIVE:
        return "dns_propagating"

    # 3. Certificate
    if cert_state in CERT_SERVING:
        return "connected"
    if cert_state in CERT_IN_PROGRESS:
        return "ssl_provisioning"
    return "pending_ssl"


def extract_states(custom_domain):
    """Pull (host_state, ownership_status, cert_state) out of a provider payload."""
    custom_domain = custom_domain or {}
    ownership = custom_domain.get("ownershipState") or {}
    cert = custom_domain.get("cert") or {}
    return (
        custom_domain.get("hostState"),
        ownership.get("status"),
        cert.get("state"),
    )


def map_custom_domain(custom_domain):
    """Return (status, host_state, ownership_status, cert_state) for a payload."""
    host_state, ownership_status, cert_state = extract_states(custom_domain)
    return (
        map_domain_status(host_state, ownership_status, cert_state),
        host_state,
        ownership_status,
        cert_state,
    )


def next_poll_delay(status, config):
    """Seconds to wait before the next check of a connection in *status*."""
    if status == "connected":
        return 0
    if status in DNS_PHASE:
        return config["DOMAIN_POLL_DNS_INTERVAL"]
    if status in SSL_PHASE:
        return config["DOMAIN_POLL_SSL_INTERVAL"]
    return config["DOMAIN_POLL_INITIAL_INTERVAL"]


def phase_of(status):
    if status in DNS_PHASE:
        return "dns"
    if status in SSL_PHASE:
        return "ssl"
    return None
