# Models package: import all models here so Alembic can discover them.

from sitelaunch.models.site import ClientSite  # noqa: F401
from sitelaunch.models.release import SiteRelease  # noqa: F401
from sitelaunch.models.domain_connection import DomainConnection  # noqa: F401
from sitelaunch.models.audit import AuditEvent  # noqa: F401
