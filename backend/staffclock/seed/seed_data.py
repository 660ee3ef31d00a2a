from sqlalchemy.orm import Session

from staffclock.core.logging import get_logger
from staffclock.core.security import hash_pin
from staffclock.domains.tenants.settings import defaults_for
from staffclock.models import Tenant, User

logger = get_logger(__name__)

DEMO_TENANT_ID = "test-tenant"

DEMO_USERS = (
    {
        "id": "user-1",
        "name": "Admin User",
        "email": "admin@test.com",
        "pin": "1234",
        "role": "admin",
        "department": "Management",
        "position": "Administrator",
        "hourly_rate": 35.0,
    },
    {
        "id": "user-2",
        "name": "Manager User",
        "email": "manager@test.com",
        "pin": "2345",
        "role": "manager",
        "department": "Operations",
        "position": "Shift Manager",
        "hourly_rate": 28.0,
    },
    {
        "id": "user-3",
        "name": "Staff User",
        "email": "staff@test.com",
        "pin": "3456",
        "role": "staff",
        "department": "Operations",
        "position": "Associate",
        "hourly_rate": 18.0,
    },
)


def seed(session: Session) -> Tenant:
    """Create the demo organization and its three users; re-running is a no-op."""
    tenant = session.get(Tenant, DEMO_TENANT_ID)
    if tenant is not None:
        logger.info("seed_skipped", tenant_id=DEMO_TENANT_ID)
        return tenant

    tenant = Tenant(
        id=DEMO_TENANT_ID,
        name="Test Company",
        subdomain="test",
        business_type="office",
        timezone="America/New_York",
        currency="USD",
        settings=defaults_for("office").to_document(),
        contact_info={"email": "admin@test.com"},
    )
    session.add(tenant)
    session.flush()

    for profile in DEMO_USERS:
        fields = dict(profile)
        pin = fields.pop("pin")
        session.add(User(tenant_id=tenant.id, pin_hash=hash_pin(pin), **fields))

    session.commit()
    logger.info("seed_complete", tenant_id=tenant.id, users=len(DEMO_USERS))
    return tenant
