"""
File-backed identity directory (``approval_config.directory``).

An ``IdentityDirectory`` built from a plain mapping, typically a YAML
file, for local runs, the operator scripts and the test suite.  A real
deployment injects an adapter over its own user store instead.

Document shape::

    users:
      alice: {roles: [manager], manager: carol, active: true}
      bob:   {roles: [buyer], manager: alice}
    departments:
      engineering: carol
    cost_centers:
      CC-100: dave
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from approval_config.loader import load_yaml_file


@dataclass
class DirectoryUser:
    user_id: str
    roles: set[str] = field(default_factory=set)
    manager: str | None = None
    active: bool = True


class StaticDirectory:
    """In-memory users, roles and org relationships.

    Mutable so tests can deactivate users or move roles between steps.
    """

    def __init__(
        self,
        users: Mapping[str, DirectoryUser] | None = None,
        departments: Mapping[str, str] | None = None,
        cost_centers: Mapping[str, str] | None = None,
    ) -> None:
        self.users: dict[str, DirectoryUser] = dict(users or {})
        self.departments: dict[str, str] = dict(departments or {})
        self.cost_centers: dict[str, str] = dict(cost_centers or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StaticDirectory":
        users = {}
        for user_id, attrs in (data.get("users") or {}).items():
            attrs = attrs or {}
            users[str(user_id)] = DirectoryUser(
                user_id=str(user_id),
                roles=set(attrs.get("roles", [])),
                manager=attrs.get("manager"),
                active=bool(attrs.get("active", True)),
            )
        return cls(
            users=users,
            departments=data.get("departments") or {},
            cost_centers=data.get("cost_centers") or {},
        )

    @classmethod
    def from_file(cls, path: Path) -> "StaticDirectory":
        return cls.from_dict(load_yaml_file(Path(path)))

    # -- mutation helpers ------------------------------------------------

    def add_user(
        self,
        user_id: str,
        *roles: str,
        manager: str | None = None,
        active: bool = True,
    ) -> DirectoryUser:
        user = DirectoryUser(user_id, set(roles), manager, active)
        self.users[user_id] = user
        return user

    def deactivate(self, user_id: str) -> None:
        self.users[user_id].active = False

    def grant(self, user_id: str, role: str) -> None:
        self.users[user_id].roles.add(role)

    # -- IdentityDirectory -----------------------------------------------

    def list_active_users_with_role(self, role: str) -> list[str]:
        return sorted(
            u.user_id for u in self.users.values() if u.active and role in u.roles
        )

    def is_user_active(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        return user is not None and user.active

    def get_manager(self, user_id: str) -> str | None:
        user = self.users.get(user_id)
        return user.manager if user is not None else None

    def get_department_head(self, department: str) -> str | None:
        return self.departments.get(department)

    def get_cost_center_owner(self, cost_center: str) -> str | None:
        return self.cost_centers.get(cost_center)
