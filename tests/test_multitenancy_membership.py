"""Tests for helpcenter.multitenancy.membership: roles and membership records."""

from __future__ import annotations

import pytest

from helpcenter.multitenancy.membership import (
    ROLE_HIERARCHY,
    ActiveSelection,
    KnowledgeBaseMembership,
    Role,
)


# ===========================================================================
# Role Tests
# ===========================================================================


class TestRole:
    """Tests for the Role hierarchy."""

    def test_values(self):
        assert Role.OWNER == "owner"
        assert Role.ADMIN == "admin"
        assert Role.CONTRIBUTOR == "contributor"
        assert Role.VIEWER == "viewer"

    def test_hierarchy_ranks(self):
        assert ROLE_HIERARCHY == {
            Role.OWNER: 4,
            Role.ADMIN: 3,
            Role.CONTRIBUTOR: 2,
            Role.VIEWER: 1,
        }
        assert Role.OWNER.rank > Role.ADMIN.rank > Role.CONTRIBUTOR.rank > Role.VIEWER.rank

    def test_at_least(self):
        """A role satisfies itself and every role below it."""
        assert Role.OWNER.at_least(Role.ADMIN)
        assert Role.ADMIN.at_least(Role.ADMIN)
        assert not Role.CONTRIBUTOR.at_least(Role.ADMIN)
        assert Role.VIEWER.at_least(Role.VIEWER)

    def test_can_edit_content(self):
        assert Role.CONTRIBUTOR.can_edit_content()
        assert Role.OWNER.can_edit_content()
        assert not Role.VIEWER.can_edit_content()

    def test_can_manage_team(self):
        assert Role.ADMIN.can_manage_team()
        assert not Role.CONTRIBUTOR.can_manage_team()


# ===========================================================================
# KnowledgeBaseMembership Tests
# ===========================================================================


class TestKnowledgeBaseMembership:
    """Tests for wire parsing of memberships."""

    def test_from_dict_camel_case(self):
        m = KnowledgeBaseMembership.from_dict(
            {"id": "kb1", "displayName": "Support", "role": "admin", "primaryColor": "#000000"}
        )
        assert m.id == "kb1"
        assert m.display_name == "Support"
        assert m.role is Role.ADMIN

    def test_from_dict_snake_case(self):
        m = KnowledgeBaseMembership.from_dict({"id": "kb1", "display_name": "Docs"})
        assert m.display_name == "Docs"
        assert m.role is Role.OWNER

    def test_from_dict_missing_id(self):
        with pytest.raises(ValueError):
            KnowledgeBaseMembership.from_dict({"displayName": "No id"})

    def test_from_dict_unknown_role(self):
        with pytest.raises(ValueError):
            KnowledgeBaseMembership.from_dict({"id": "kb1", "role": "superuser"})

    def test_to_dict_round_trip_keys(self):
        m = KnowledgeBaseMembership("kb1", "Support", Role.VIEWER)
        assert m.to_dict() == {"id": "kb1", "displayName": "Support", "role": "viewer"}

    def test_is_frozen(self):
        m = KnowledgeBaseMembership("kb1", "Support")
        with pytest.raises(AttributeError):
            m.id = "kb2"  # type: ignore[misc]


# ===========================================================================
# ActiveSelection Tests
# ===========================================================================


class TestActiveSelection:
    def test_with_membership(self):
        active = ActiveSelection("kb1", KnowledgeBaseMembership("kb1", "Support", Role.ADMIN))
        assert active.display_name == "Support"
        assert active.role is Role.ADMIN

    def test_without_membership(self):
        """While a refresh is in flight the membership may be unknown."""
        active = ActiveSelection("kb1")
        assert active.display_name is None
        assert active.role is None
