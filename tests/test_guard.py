"""Tests for AuthorizationGuard decisions."""

import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import (
    InsufficientPermissionError,
    NotAMemberError,
    OwnerProtectedError,
)
from app.features.permissions.dependencies import AuthorizationGuard
from app.features.permissions.schemas import AuthorizationDecision, DenialReason
from app.features.permissions.table import Permission, Role


@pytest.fixture
def guard(store, table):
    return AuthorizationGuard(store, table)


@pytest.fixture
async def team(store, users):
    """Acme, owned by alice, with bob (admin), carol (member) and dave (viewer)."""
    team = await store.create_team("Acme", users["alice"].id)
    await store.add_membership(team.id, users["bob"].id, Role.ADMIN)
    await store.add_membership(team.id, users["carol"].id, Role.MEMBER)
    await store.add_membership(team.id, users["dave"].id, Role.VIEWER)
    return team


async def membership_of(store, team, user):
    return next(m for m in await store.list_memberships(team.id) if m.user_id == user.id)


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def guard_log():
    """Records from the guard's logger (app loggers do not propagate to caplog)."""
    logger = logging.getLogger("app.features.permissions.dependencies")
    handler = RecordingHandler()
    level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(level)


class TestAuthorize:
    async def test_owner_allowed_everything(self, guard, team, users):
        for permission in Permission:
            decision = await guard.authorize(users["alice"].id, team.id, permission)
            assert decision.allowed
            assert decision.role == Role.OWNER

    async def test_non_member_denied(self, guard, team, users, store):
        await store.remove_membership((await membership_of(store, team, users["dave"])).id)
        decision = await guard.authorize(users["dave"].id, team.id, Permission.VIEW_INVOICES)
        assert not decision
        assert decision.reason == DenialReason.NOT_A_MEMBER
        assert decision.role is None

    async def test_unknown_team_is_not_a_member(self, guard, users):
        decision = await guard.authorize(users["alice"].id, "no-such-team", Permission.VIEW_INVOICES)
        assert decision.reason == DenialReason.NOT_A_MEMBER

    async def test_viewer_cannot_upload(self, guard, team, users):
        decision = await guard.authorize(users["dave"].id, team.id, Permission.UPLOAD_INVOICES)
        assert not decision.allowed
        assert decision.reason == DenialReason.INSUFFICIENT_PERMISSION
        assert decision.role == Role.VIEWER

    async def test_member_can_upload(self, guard, team, users):
        decision = await guard.authorize(users["carol"].id, team.id, "upload_invoices")
        assert decision.allowed
        assert decision.role == Role.MEMBER

    async def test_unknown_permission_denied(self, guard, team, users):
        decision = await guard.authorize(users["alice"].id, team.id, "launch_rockets")
        assert decision.reason == DenialReason.INSUFFICIENT_PERMISSION

    async def test_resolve_role(self, guard, team, users):
        assert await guard.resolve_role(users["bob"].id, team.id) == Role.ADMIN
        assert await guard.resolve_role("stranger", team.id) is None

    async def test_acme_invitation_scenario(self, guard, store, users):
        alice = users["alice"]
        team = await store.create_team("Acme", alice.id)
        await store.create_invitation(team.id, "bob@x.com", Role.MEMBER, alice.id)

        pending = await store.list_pending_invitations(team.id)
        assert len(pending) == 1
        assert pending[0].role == Role.MEMBER
        assert pending[0].email == "bob@x.com"
        assert (await guard.authorize(alice.id, team.id, Permission.MANAGE_TEAM)).allowed


class TestRoleChange:
    async def test_admin_may_change_regular_roles(self, guard, store, team, users):
        carol = await membership_of(store, team, users["carol"])
        decision = await guard.authorize_role_change(users["bob"].id, carol, Role.VIEWER)
        assert decision.allowed
        assert decision.role == Role.ADMIN

    async def test_admin_may_not_touch_owner(self, guard, store, team, users):
        owner = await membership_of(store, team, users["alice"])
        decision = await guard.authorize_role_change(users["bob"].id, owner, Role.MEMBER)
        assert decision.reason == DenialReason.OWNER_PROTECTED

    @pytest.mark.parametrize("new_role", [Role.OWNER, "owner", "OWNER"])
    async def test_admin_may_not_grant_owner(self, guard, store, team, users, new_role):
        carol = await membership_of(store, team, users["carol"])
        decision = await guard.authorize_role_change(users["bob"].id, carol, new_role)
        assert decision.reason == DenialReason.OWNER_PROTECTED

    async def test_owner_may_grant_owner(self, guard, store, team, users):
        bob = await membership_of(store, team, users["bob"])
        decision = await guard.authorize_role_change(users["alice"].id, bob, Role.OWNER)
        assert decision.allowed

    async def test_member_lacks_manage_team(self, guard, store, team, users):
        dave = await membership_of(store, team, users["dave"])
        decision = await guard.authorize_role_change(users["carol"].id, dave, Role.MEMBER)
        assert decision.reason == DenialReason.INSUFFICIENT_PERMISSION

    async def test_removal(self, guard, store, team, users):
        owner = await membership_of(store, team, users["alice"])
        carol = await membership_of(store, team, users["carol"])
        assert (await guard.authorize_member_removal(users["bob"].id, carol)).allowed
        denied = await guard.authorize_member_removal(users["bob"].id, owner)
        assert denied.reason == DenialReason.OWNER_PROTECTED


class TestDecision:
    def test_allow_is_truthy(self):
        decision = AuthorizationDecision.allow(Role.MEMBER)
        assert decision
        decision.raise_for_denial()

    @pytest.mark.parametrize("reason,error", [
        (DenialReason.NOT_A_MEMBER, NotAMemberError),
        (DenialReason.INSUFFICIENT_PERMISSION, InsufficientPermissionError),
        (DenialReason.OWNER_PROTECTED, OwnerProtectedError),
    ])
    def test_raise_for_denial(self, reason, error):
        decision = AuthorizationDecision.deny(reason)
        assert not decision
        with pytest.raises(error):
            decision.raise_for_denial()

    def test_decisions_are_frozen(self):
        decision = AuthorizationDecision.allow(Role.VIEWER)
        with pytest.raises(PydanticValidationError):
            decision.allowed = False


class TestDecisionLogging:
    async def test_denial_logged_with_arguments(self, guard, team, users, guard_log):
        carol = users["carol"]
        await guard.authorize(carol.id, team.id, Permission.MANAGE_TEAM)
        record = guard_log[-1]
        assert record.msg == "User %s (%s) denied %s in team %s"
        assert record.args == (carol.id, "member", Permission.MANAGE_TEAM, team.id)

    async def test_owner_protection_logged(self, guard, store, team, users, guard_log):
        owner = await membership_of(store, team, users["alice"])
        await guard.authorize_member_removal(users["bob"].id, owner)
        record = guard_log[-1]
        assert record.args == (users["bob"].id, owner.id)
        assert owner.id in record.getMessage()
