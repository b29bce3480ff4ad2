"""
Seed script to populate a demo workspace.

Creates, if they do not exist yet:
- A demo owner and three teammates (admin, member, viewer)
- A "Demo Workspace" team owned by the demo owner
- A pending invitation for a fourth address

Run it against the database backend; in-memory state ends with the process.
Pair it with AUTH_PROVIDER=fixed and FIXED_USER_ID=<printed owner id> to
explore the API locally without Appwrite.

Usage:
    STORAGE_BACKEND=database python -m scripts.seed_demo
"""
import asyncio

from app.core import config
from app.core.storage import Storage, build_storage_provider
from app.features.permissions.table import Role
from app.features.teams.store import MembershipStore
from app.features.users.schemas import UserRecord
from app.features.users.store import IdentityStore
from app.utils import get_logger


log = get_logger(__name__)


DEMO_TEAM_NAME = "Demo Workspace"

DEMO_OWNER = ("demo", "demo@example.com", "Demo Owner")

DEMO_TEAMMATES = [
    ("alice", "alice@example.com", "Alice Admin", Role.ADMIN),
    ("bob", "bob@example.com", "Bob Member", Role.MEMBER),
    ("victor", "victor@example.com", "Victor Viewer", Role.VIEWER),
]

DEMO_INVITEE = ("carol@example.com", Role.MANAGER)


async def seed_user(identities: IdentityStore, storage: Storage, username: str, email: str, display_name: str) -> UserRecord:
    existing = await storage.get_user_by_username(username)
    if existing:
        log.debug("User '%s' already exists, skipping", username)
        return existing
    return await identities.register_user(username=username, email=email, display_name=display_name)


async def seed_demo(storage: Storage) -> UserRecord:
    """
    Create the demo users, team, memberships and invitation.

    Returns:
        The demo owner
    """
    identities = IdentityStore(storage)
    store = MembershipStore(storage)

    log.info("Creating demo users...")
    owner = await seed_user(identities, storage, *DEMO_OWNER)
    teammates = [
        (await seed_user(identities, storage, username, email, name), role)
        for username, email, name, role in DEMO_TEAMMATES
    ]

    teams = await store.list_teams_for_user(owner.id)
    team = next((t for t in teams if t.name == DEMO_TEAM_NAME), None)
    if team is not None:
        log.info("Team '%s' already exists (%s), skipping", DEMO_TEAM_NAME, team.id)
        return owner

    log.info("Creating team '%s'...", DEMO_TEAM_NAME)
    team = await store.create_team(DEMO_TEAM_NAME, owner.id)
    for user, role in teammates:
        await store.add_membership(team.id, user.id, role)
        log.info("  + %s as %s", user.username, role.value)

    email, role = DEMO_INVITEE
    invitation = await store.create_invitation(team.id, email, role, invited_by=owner.id)
    log.info("  Invited %s as %s (token: %s)", email, role.value, invitation.token)
    return owner


async def main():
    """Main seed function."""
    if config.STORAGE_BACKEND == "memory":
        log.warning("STORAGE_BACKEND=memory: seeded data will not outlive this script")

    provider = build_storage_provider()
    await provider.startup()

    async with provider.session() as storage:
        owner = await seed_demo(storage)

    log.info("Demo workspace ready")
    log.info("Run with AUTH_PROVIDER=fixed FIXED_USER_ID=%s to act as %s", owner.id, owner.username)


if __name__ == "__main__":
    asyncio.run(main())
