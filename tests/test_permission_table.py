"""Tests for the static role -> permission table."""

import pytest

from app.features.permissions.table import (
    DEFAULT_ROLE_PERMISSIONS,
    Permission,
    PermissionTable,
    Role,
    build_permission_table,
)


EXPECTED = {
    Role.OWNER: set(Permission),
    Role.ADMIN: set(Permission),
    Role.MANAGER: {Permission.VIEW_INVOICES, Permission.UPLOAD_INVOICES, Permission.MANAGE_CATEGORIES},
    Role.MEMBER: {Permission.VIEW_INVOICES, Permission.UPLOAD_INVOICES},
    Role.VIEWER: {Permission.VIEW_INVOICES},
}


class TestHasPermission:
    @pytest.mark.parametrize("role", list(Role))
    def test_matches_table(self, table, role):
        for permission in Permission:
            assert table.has_permission(role, permission) == (permission in EXPECTED[role])

    def test_accepts_plain_strings(self, table):
        assert table.has_permission("member", "upload_invoices")
        assert not table.has_permission("viewer", "upload_invoices")

    def test_upper_case_role_names(self, table):
        assert Role("OWNER") is Role.OWNER
        assert table.has_permission("ADMIN", "manage_team")

    def test_unknown_role_denied(self, table):
        assert not table.has_permission("superuser", Permission.VIEW_INVOICES)
        assert not table.has_permission(None, Permission.VIEW_INVOICES)

    def test_unknown_permission_denied(self, table):
        assert not table.has_permission(Role.OWNER, "delete_everything")


class TestTable:
    def test_permissions_for(self, table):
        assert table.permissions_for(Role.VIEWER) == frozenset({Permission.VIEW_INVOICES})
        assert table.permissions_for("nobody") == frozenset()

    def test_as_dict_lists_every_role(self, table):
        as_dict = table.as_dict()
        assert list(as_dict) == [r.value for r in Role]
        assert as_dict["member"] == ["upload_invoices", "view_invoices"]

    def test_immutable(self, table):
        with pytest.raises(AttributeError):
            table._grants = {}
        with pytest.raises(TypeError):
            table._grants[Role.VIEWER] = frozenset(Permission)

    def test_independent_of_source_mapping(self):
        grants = {Role.VIEWER: (Permission.VIEW_INVOICES,)}
        custom = PermissionTable(grants)
        grants[Role.VIEWER] = tuple(Permission)
        assert not custom.has_permission(Role.VIEWER, Permission.MANAGE_TEAM)

    def test_build_uses_defaults(self):
        built = build_permission_table()
        for role, perms in DEFAULT_ROLE_PERMISSIONS.items():
            assert built.permissions_for(role) == frozenset(perms)
