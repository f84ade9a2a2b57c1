"""
Unit tests for the permission catalog.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import InvalidPermissionNameFormat, UnknownPermission
from service_permissions.app.rbac.catalog import (
    ALL_PERMISSIONS, DEFAULT_CATALOG, PermissionCatalog, Permissions, parse_permission_name
)
from service_permissions.app.rbac.models import PermissionDefinition


class TestPermissionCatalog:
    """Test cases for PermissionCatalog."""

    def test_all_permissions_ordered_and_unique(self):
        """Catalog keeps registration order without duplicates."""
        permissions = DEFAULT_CATALOG.all_permissions()

        assert len(permissions) == len(ALL_PERMISSIONS) == 42
        assert list(permissions) == list(ALL_PERMISSIONS)
        assert len({p.name for p in permissions}) == len(permissions)

    def test_every_registered_name_is_valid_and_round_trips(self):
        """isValid holds and fromName round-trips for every catalog entry."""
        for definition in DEFAULT_CATALOG:
            name = definition.resource + "." + definition.action
            assert DEFAULT_CATALOG.is_valid(name)

            resolved = DEFAULT_CATALOG.from_name(name)
            assert resolved.resource == definition.resource
            assert resolved.action == definition.action
            assert resolved == definition

    def test_is_valid_is_case_sensitive(self):
        assert DEFAULT_CATALOG.is_valid("games.read")
        assert not DEFAULT_CATALOG.is_valid("Games.Read")
        assert not DEFAULT_CATALOG.is_valid("games.fly")
        assert not DEFAULT_CATALOG.is_valid(None)

    def test_by_resource_groups(self):
        grouped = DEFAULT_CATALOG.by_resource()

        assert list(grouped)[0] == "users"
        assert [p.name for p in grouped["s3"]] == ["s3.presign", "s3.delete"]
        assert sum(len(items) for items in grouped.values()) == len(DEFAULT_CATALOG)

        with pytest.raises(TypeError):
            grouped["new"] = ()

    def test_from_name_synthesises_unregistered_names(self):
        """Well-formed unknown names resolve to a displayable definition."""
        definition = DEFAULT_CATALOG.from_name("legacy.export")

        assert definition.resource == "legacy"
        assert definition.action == "export"
        assert definition.name == "legacy.export"
        assert definition.description == "Permission for export action on legacy resource"
        assert not DEFAULT_CATALOG.is_valid("legacy.export")

    @pytest.mark.parametrize("name", ["games", "games.", ".read", "a.b.c", ""])
    def test_from_name_rejects_malformed(self, name):
        with pytest.raises(InvalidPermissionNameFormat):
            DEFAULT_CATALOG.from_name(name)

    def test_require_is_strict(self):
        assert DEFAULT_CATALOG.require("orders.read") is Permissions.ORDERS_READ

        with pytest.raises(UnknownPermission) as exc_info:
            DEFAULT_CATALOG.require("legacy.export")
        assert exc_info.value.code == "UNKNOWN_PERMISSION"

        with pytest.raises(InvalidPermissionNameFormat):
            DEFAULT_CATALOG.require("nonsense")

    def test_invalid_names_preserves_order_and_dedupes(self):
        invalid = DEFAULT_CATALOG.invalid_names(
            ["games.read", "bogus!!name", "x.y", "bogus!!name", "cart.read"]
        )
        assert invalid == ["bogus!!name", "x.y"]

    def test_rejects_duplicate_definitions(self):
        with pytest.raises(ValueError):
            PermissionCatalog([Permissions.GAMES_READ, Permissions.GAMES_READ])

    def test_rejects_non_lowercase_tokens(self):
        with pytest.raises(ValueError):
            PermissionCatalog([PermissionDefinition("Games", "read", "Games.read")])

    def test_matches_is_case_insensitive(self):
        assert Permissions.GAMES_READ.matches("GAMES", "Read")
        assert not Permissions.GAMES_READ.matches("games", "delete")


class TestParsePermissionName:
    """Test cases for parse_permission_name."""

    def test_splits_two_segments(self):
        assert parse_permission_name("gamekeys.update") == ("gamekeys", "update")

    def test_non_string(self):
        with pytest.raises(InvalidPermissionNameFormat):
            parse_permission_name(42)
