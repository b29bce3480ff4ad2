"""API tests for teams, members, invitations and permissions."""

import pytest

from app.features.users.auth import AppwriteAuthenticationProvider


@pytest.fixture
def team_id(client, api_users):
    """Acme, created by alice."""
    resp = client.post("/teams", json={"name": "Acme"})
    assert resp.status_code == 201
    return resp.json()["id"]


def add_member(client, team_id, user, role):
    resp = client.post(f"/teams/{team_id}/members", json={"user_id": user.id, "role": role})
    assert resp.status_code == 201, resp.text
    return resp.json()


def member_id_of(client, team_id, user):
    members = client.get(f"/teams/{team_id}/members").json()
    return next(m["id"] for m in members if m["user_id"] == user.id)


# ── Public endpoints ─────────────────────────────────────────────


class TestPublic:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "online"
        assert client.get("/health").json() == {"status": "healthy"}

    def test_role_table(self, client):
        roles = client.get("/permissions/roles").json()["roles"]
        assert roles["viewer"] == ["view_invoices"]
        assert "manage_team" in roles["admin"]

    def test_unauthenticated(self, app, client):
        app.state.auth_provider = AppwriteAuthenticationProvider()
        resp = client.get("/teams")
        assert resp.status_code == 401


# ── Teams ────────────────────────────────────────────────────────


class TestTeams:
    def test_create_team(self, client, api_users):
        resp = client.post("/teams", json={"name": "  Acme  "})
        assert resp.status_code == 201
        body = resp.json()
        assert body["name"] == "Acme"
        assert body["owner_id"] == api_users["alice"].id
        assert body["role"] == "owner"

    def test_blank_name_is_400(self, client, api_users):
        resp = client.post("/teams", json={"name": "   "})
        assert resp.status_code == 400
        assert "name" in resp.json()

    def test_list_my_teams(self, client, api_users, team_id):
        assert [t["id"] for t in client.get("/teams").json()] == [team_id]
        api_users.act_as("bob")
        assert client.get("/teams").json() == []

    def test_get_team_requires_membership(self, client, api_users, team_id):
        api_users.act_as("bob")
        resp = client.get(f"/teams/{team_id}")
        assert resp.status_code == 403
        assert resp.json()["code"] == "not_a_member"

    def test_rename_requires_settings_access(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "manager")
        api_users.act_as("bob")
        resp = client.patch(f"/teams/{team_id}", json={"name": "Hijacked"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "insufficient_permission"

        api_users.act_as("alice")
        resp = client.patch(f"/teams/{team_id}", json={"name": "Acme Corp"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Acme Corp"

    def test_only_owner_deletes(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "admin")
        api_users.act_as("bob")
        resp = client.delete(f"/teams/{team_id}")
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

        api_users.act_as("alice")
        assert client.delete(f"/teams/{team_id}").status_code == 204
        assert client.get(f"/teams/{team_id}").status_code == 403
        assert client.get("/teams").json() == []


# ── Members ──────────────────────────────────────────────────────


class TestMembers:
    def test_list_members_with_profiles(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "member")
        members = client.get(f"/teams/{team_id}/members").json()
        by_user = {m["user_id"]: m for m in members}
        assert by_user[api_users["alice"].id]["role"] == "owner"
        assert by_user[api_users["bob"].id]["user"]["display_name"] == "Bob"

    def test_duplicate_member_is_400(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "member")
        resp = client.post(f"/teams/{team_id}/members", json={"user_id": api_users["bob"].id, "role": "viewer"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_add_owner_is_forbidden(self, client, api_users, team_id):
        resp = client.post(f"/teams/{team_id}/members", json={"user_id": api_users["bob"].id, "role": "owner"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

    def test_add_unknown_user_is_404(self, client, api_users, team_id):
        resp = client.post(f"/teams/{team_id}/members", json={"user_id": "ghost"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_change_role(self, client, api_users, team_id):
        member = add_member(client, team_id, api_users["bob"], "viewer")
        resp = client.patch(f"/teams/{team_id}/members/{member['id']}/role", json={"role": "manager"})
        assert resp.status_code == 200
        assert resp.json()["role"] == "manager"

    def test_invalid_role_is_400(self, client, api_users, team_id):
        member = add_member(client, team_id, api_users["bob"], "viewer")
        resp = client.patch(f"/teams/{team_id}/members/{member['id']}/role", json={"role": "superuser"})
        assert resp.status_code == 400

    def test_admin_cannot_touch_owner(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "admin")
        owner_member_id = member_id_of(client, team_id, api_users["alice"])
        api_users.act_as("bob")

        resp = client.patch(f"/teams/{team_id}/members/{owner_member_id}/role", json={"role": "member"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"
        resp = client.delete(f"/teams/{team_id}/members/{owner_member_id}")
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

    def test_admin_cannot_grant_owner(self, client, api_users, team_id):
        add_member(client, team_id, api_users["bob"], "admin")
        carol = add_member(client, team_id, api_users["carol"], "member")
        api_users.act_as("bob")
        resp = client.patch(f"/teams/{team_id}/members/{carol['id']}/role", json={"role": "owner"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

    def test_owner_cannot_demote_self(self, client, api_users, team_id):
        owner_member_id = member_id_of(client, team_id, api_users["alice"])
        resp = client.patch(f"/teams/{team_id}/members/{owner_member_id}/role", json={"role": "admin"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

    def test_ownership_handoff(self, client, api_users, team_id):
        bob = add_member(client, team_id, api_users["bob"], "admin")
        resp = client.patch(f"/teams/{team_id}/members/{bob['id']}/role", json={"role": "owner"})
        assert resp.status_code == 200
        assert resp.json()["role"] == "owner"

        team = client.get(f"/teams/{team_id}").json()
        assert team["owner_id"] == api_users["bob"].id
        assert team["role"] == "admin"

    def test_remove_member(self, client, api_users, team_id):
        member = add_member(client, team_id, api_users["bob"], "member")
        assert client.delete(f"/teams/{team_id}/members/{member['id']}").status_code == 204
        api_users.act_as("bob")
        assert client.get(f"/teams/{team_id}").status_code == 403

    def test_member_of_other_team_is_404(self, client, api_users, team_id):
        other = client.post("/teams", json={"name": "Globex"}).json()
        member = add_member(client, other["id"], api_users["bob"], "member")
        resp = client.delete(f"/teams/{team_id}/members/{member['id']}")
        assert resp.status_code == 404

    def test_unknown_member_is_404(self, client, api_users, team_id):
        resp = client.patch(f"/teams/{team_id}/members/nope/role", json={"role": "member"})
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Team member not found", "code": "not_found"}

    def test_non_member_cannot_tell_member_ids_apart(self, client, api_users, team_id):
        bob = add_member(client, team_id, api_users["bob"], "member")
        api_users.act_as("carol")

        for member_id in (bob["id"], "nope"):
            resp = client.patch(f"/teams/{team_id}/members/{member_id}/role", json={"role": "viewer"})
            assert resp.status_code == 403
            assert resp.json()["code"] == "not_a_member"
            resp = client.delete(f"/teams/{team_id}/members/{member_id}")
            assert resp.status_code == 403
            assert resp.json()["code"] == "not_a_member"

    def test_viewer_gets_403_for_unknown_member(self, client, api_users, team_id):
        add_member(client, team_id, api_users["dave"], "viewer")
        api_users.act_as("dave")
        resp = client.delete(f"/teams/{team_id}/members/nope")
        assert resp.status_code == 403
        assert resp.json()["code"] == "insufficient_permission"


# ── Invitations ──────────────────────────────────────────────────


class TestInvitations:
    def test_acme_scenario(self, client, api_users, team_id):
        resp = client.post(f"/teams/{team_id}/invitations", json={"email": "bob@x.com", "role": "member"})
        assert resp.status_code == 201
        assert resp.json()["token"]

        pending = client.get(f"/teams/{team_id}/invitations").json()
        assert len(pending) == 1
        assert pending[0]["email"] == "bob@x.com"
        assert pending[0]["role"] == "member"
        assert "token" not in pending[0]

        check = client.post("/permissions/check", json={"team_id": team_id, "permission": "manage_team"})
        assert check.json() == {"has_permission": True, "role": "owner", "reason": None}

    def test_invalid_email_is_400(self, client, api_users, team_id):
        resp = client.post(f"/teams/{team_id}/invitations", json={"email": "nope"})
        assert resp.status_code == 400
        assert "email" in resp.json()

    def test_cannot_invite_owner(self, client, api_users, team_id):
        resp = client.post(f"/teams/{team_id}/invitations", json={"email": "bob@x.com", "role": "owner"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "owner_protected"

    def test_viewer_cannot_invite(self, client, api_users, team_id):
        add_member(client, team_id, api_users["dave"], "viewer")
        api_users.act_as("dave")
        resp = client.post(f"/teams/{team_id}/invitations", json={"email": "bob@x.com"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "insufficient_permission"

    def test_delete_is_idempotent(self, client, api_users, team_id):
        before = client.get(f"/teams/{team_id}/invitations").json()
        invitation = client.post(f"/teams/{team_id}/invitations", json={"email": "bob@x.com"}).json()
        assert client.delete(f"/teams/{team_id}/invitations/{invitation['id']}").status_code == 204
        assert client.delete(f"/teams/{team_id}/invitations/{invitation['id']}").status_code == 204
        assert client.get(f"/teams/{team_id}/invitations").json() == before

    def test_accept(self, client, api_users, team_id):
        invitation = client.post(
            f"/teams/{team_id}/invitations", json={"email": "bob@example.com", "role": "manager"}
        ).json()

        api_users.act_as("bob")
        resp = client.post(f"/invitations/{invitation['token']}/accept")
        assert resp.status_code == 200
        assert resp.json()["role"] == "manager"
        assert client.get(f"/teams/{team_id}").json()["role"] == "manager"

        api_users.act_as("alice")
        assert client.get(f"/teams/{team_id}/invitations").json() == []

    def test_accept_wrong_user(self, client, api_users, team_id):
        invitation = client.post(f"/teams/{team_id}/invitations", json={"email": "bob@example.com"}).json()
        api_users.act_as("carol")
        resp = client.post(f"/invitations/{invitation['token']}/accept")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_accept_unknown_token(self, client, api_users):
        resp = client.post("/invitations/bogus/accept")
        assert resp.status_code == 404


# ── Permission checks ────────────────────────────────────────────


class TestPermissionCheck:
    def test_viewer_cannot_upload(self, client, api_users, team_id):
        add_member(client, team_id, api_users["dave"], "viewer")
        api_users.act_as("dave")
        resp = client.post("/permissions/check", json={"team_id": team_id, "permission": "upload_invoices"})
        assert resp.status_code == 200
        assert resp.json() == {
            "has_permission": False,
            "role": "viewer",
            "reason": "insufficient_permission",
        }

    def test_non_member(self, client, api_users, team_id):
        api_users.act_as("carol")
        resp = client.post("/permissions/check", json={"team_id": team_id, "permission": "view_invoices"})
        assert resp.json() == {"has_permission": False, "role": None, "reason": "not_a_member"}

    def test_unknown_permission(self, client, api_users, team_id):
        resp = client.post("/permissions/check", json={"team_id": team_id, "permission": "launch_rockets"})
        assert resp.json()["has_permission"] is False
