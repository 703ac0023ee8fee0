import logging

from sqlalchemy.orm import Session

from taskflow.db.models import Role, RoleName


logger = logging.getLogger(__name__)

ROLE_DESCRIPTIONS = {
    RoleName.USER: "Standard user role with basic permissions",
    RoleName.ADMIN: "Administrator role with full system access",
    RoleName.MANAGER: "Manager role with project and team management permissions",
}


def seed_roles(db: Session) -> list[str]:
    """Insert any missing reference roles. Returns the names that were created."""
    existing = {name for (name,) in db.query(Role.name).all()}
    created: list[str] = []
    for name, description in ROLE_DESCRIPTIONS.items():
        if name.value in existing:
            continue
        db.add(Role(name=name.value, description=description))
        created.append(name.value)
        logger.info("Created role: %s", name.value)

    if created:
        db.commit()
    logger.info("Role initialization check completed")
    return created
