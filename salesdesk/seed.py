from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.core.database import SessionLocal
from salesdesk.core.security import hash_password
from salesdesk.identity.models import User
from salesdesk.logging import configure_logging


logger = logging.getLogger("salesdesk.lifecycle")


@dataclass(frozen=True, slots=True)
class SeedUser:
    email: str
    first_name: str
    last_name: str
    role: str


SEED_ADMIN = SeedUser("admin@crm.com", "Admin", "User", "admin")
SEED_AGENTS = (
    SeedUser("agent1@crm.com", "John", "Smith", "agent"),
    SeedUser("agent2@crm.com", "Sarah", "Johnson", "agent"),
)


def seed_users(session: Session, *, admin_password: str, agent_password: str) -> list[User]:
    """Create the default admin and agents. Existing accounts are left untouched."""

    created: list[User] = []
    for account, password in [(SEED_ADMIN, admin_password), *((agent, agent_password) for agent in SEED_AGENTS)]:
        if session.scalar(select(User.id).where(User.email == account.email)) is not None:
            continue
        user = User(
            email=account.email,
            password_hash=hash_password(password),
            first_name=account.first_name,
            last_name=account.last_name,
            role=account.role,
        )
        session.add(user)
        created.append(user)
    session.commit()
    return created


def main() -> None:
    configure_logging()
    with SessionLocal() as session:
        created = seed_users(
            session,
            admin_password=os.getenv("SEED_ADMIN_PASSWORD", "admin123"),
            agent_password=os.getenv("SEED_AGENT_PASSWORD", "agent123"),
        )
        for user in created:
            logger.info("seed.user_created", extra={"user_id": str(user.id), "action": user.email})
        logger.info("seed.completed", extra={"outcome": f"{len(created)} users created"})


if __name__ == "__main__":
    main()
