"""
Knowledge-base membership and selection models for Help Center.

A knowledge base is the unit of tenancy: an isolated namespace of
articles, categories and team members. A user may belong to several
knowledge bases, each with one role.

Roles (highest first):
    - OWNER: Created the knowledge base; full control
    - ADMIN: Manages team, integrations and content
    - CONTRIBUTOR: Creates and edits content
    - VIEWER: Read-only access

Example:
    from helpcenter.multitenancy.membership import (
        KnowledgeBaseMembership, Role,
    )

    membership = KnowledgeBaseMembership.from_dict(
        {"id": "kb1", "displayName": "Support", "role": "admin"}
    )
    assert membership.role.can_manage_team()
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Team roles within a knowledge base.

    Roles are ordered: every role holds the permissions of the roles
    below it. Compare with :meth:`at_least` rather than by value.

    Attributes:
        OWNER: The creator of the knowledge base. Cannot be removed
               or demoted.
        ADMIN: Manages team membership and integrations.
        CONTRIBUTOR: Creates, edits and deletes articles and categories.
        VIEWER: Reads content only.
    """

    OWNER = "owner"
    ADMIN = "admin"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        """Position in the role hierarchy (higher is more privileged)."""
        return ROLE_HIERARCHY[self]

    def at_least(self, other: "Role") -> bool:
        """Check whether this role holds at least the privileges of ``other``.

        Args:
            other: The minimum required role.

        Returns:
            True if this role ranks equal to or above ``other``.
        """
        return self.rank >= other.rank

    def can_edit_content(self) -> bool:
        return self.at_least(Role.CONTRIBUTOR)

    def can_manage_team(self) -> bool:
        return self.at_least(Role.ADMIN)


ROLE_HIERARCHY: dict[Role, int] = {
    Role.OWNER: 4,
    Role.ADMIN: 3,
    Role.CONTRIBUTOR: 2,
    Role.VIEWER: 1,
}


@dataclass(frozen=True)
class KnowledgeBaseMembership:
    """A knowledge base the current identity may access.

    Produced by the membership listing call. The tenant resolver only
    reads and caches these; they are created and destroyed server-side.

    Attributes:
        id: Opaque knowledge-base identifier.
        display_name: Human-readable name.
        role: The caller's role in this knowledge base.
    """

    id: str
    display_name: str
    role: Role = Role.OWNER

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KnowledgeBaseMembership":
        """Build a membership from a wire record.

        Accepts the API's camelCase keys and tolerates snake_case ones.

        Args:
            data: A record with ``id``, ``displayName`` and ``role``.

        Returns:
            The parsed membership.

        Raises:
            ValueError: If ``id`` is missing or the role is unknown.
        """
        kb_id = data.get("id")
        if not kb_id:
            raise ValueError("Knowledge base record is missing an id")
        display_name = data.get("displayName", data.get("display_name", ""))
        return cls(
            id=str(kb_id),
            display_name=display_name or "",
            role=Role(data.get("role", Role.OWNER.value)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation.

        Returns:
            Dictionary with camelCase keys.
        """
        return {
            "id": self.id,
            "displayName": self.display_name,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class ActiveSelection:
    """The knowledge base currently in scope for a session.

    Attributes:
        selected_id: The active knowledge-base id.
        membership: The matching membership from the loaded list, or
            None while a list refresh that will contain it is in flight.
    """

    selected_id: str
    membership: KnowledgeBaseMembership | None = None

    @property
    def display_name(self) -> str | None:
        return self.membership.display_name if self.membership else None

    @property
    def role(self) -> Role | None:
        return self.membership.role if self.membership else None
