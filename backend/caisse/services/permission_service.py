# Overview: Authorization oracle consulted by the transport layer.

"""
Permission checking.

The ledger services never check permissions themselves; they receive an
actor id and trust the caller. Transports (the CLI here) ask an oracle
implementing ``user_can(user_id, code)`` before calling a mutating operation.

DESIGN PRINCIPLES:
- Fail closed: unknown users and unknown roles have no permissions
- Log denials only
- Effective set = role permissions | granted overrides - revoked overrides
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from ..errors import PermissionDeniedError
from ..permissions import effective_permissions, permission_matches

log = logging.getLogger(__name__)


class AuthorizationOracle(Protocol):
    def user_can(self, user_id: int, code: str) -> bool:
        ...


class StaticPermissionOracle:
    """Oracle backed by plain role and override mappings (usually app config)."""

    def __init__(
        self,
        role_permissions: Mapping[str, list[str]],
        user_roles: Mapping[int, list[str]] | None = None,
        user_overrides: Mapping[int, Mapping[str, bool]] | None = None,
    ):
        self.role_permissions = {role: set(codes) for role, codes in role_permissions.items()}
        self.user_roles = {int(uid): list(roles) for uid, roles in (user_roles or {}).items()}
        self.user_overrides = {int(uid): dict(o) for uid, o in (user_overrides or {}).items()}

    @classmethod
    def from_config(cls, config: Mapping) -> "StaticPermissionOracle":
        return cls(
            config.get("CAISSE_ROLE_PERMISSIONS", {}),
            config.get("CAISSE_USER_ROLES", {}),
            config.get("CAISSE_USER_PERMISSION_OVERRIDES", {}),
        )

    def roles_for(self, user_id: int) -> list[str]:
        return self.user_roles.get(user_id, [])

    def revoked_for(self, user_id: int) -> set[str]:
        return {code for code, granted in self.user_overrides.get(user_id, {}).items() if not granted}

    def permissions_for(self, user_id: int) -> set[str]:
        """Effective permission codes (wildcards unexpanded)."""
        from_roles: set[str] = set()
        for role in self.roles_for(user_id):
            from_roles |= self.role_permissions.get(role, set())
        return effective_permissions(from_roles, self.user_overrides.get(user_id))

    def user_can(self, user_id: int, code: str) -> bool:
        # An explicit revocation wins over any wildcard grant
        if code in self.revoked_for(user_id):
            return False
        return any(permission_matches(granted, code) for granted in self.permissions_for(user_id))

    def require(self, user_id: int, code: str) -> None:
        if not self.user_can(user_id, code):
            log.warning("Permission denied: user %s lacks %s", user_id, code)
            raise PermissionDeniedError(
                f"User {user_id} lacks permission {code}",
                details={"user_id": user_id, "permission": code},
            )
