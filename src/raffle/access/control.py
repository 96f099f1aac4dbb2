"""Role-based permission matrix.

Every mutating entry point names itself in PERMISSIONS and calls
``AccessControl.require`` before doing anything else. An empty role set
means any caller may invoke the operation. Operations missing from the
matrix are refused (fail-closed).
"""

from __future__ import annotations

import enum
from typing import Dict, FrozenSet, Mapping

from raffle.errors import AuthorizationError


class Role(str, enum.Enum):
    ADMIN = "admin"
    OPERATOR = "operator"  # May mark claims revealed (held by the settlement engine)
    MERCHANT = "merchant"  # May create campaigns


ANY_CALLER: FrozenSet[Role] = frozenset()

PERMISSIONS: Dict[str, FrozenSet[Role]] = {
    # Campaign registry (ownership checked by the registry itself)
    "create_campaign": frozenset({Role.MERCHANT, Role.ADMIN}),
    "update_metadata": ANY_CALLER,
    "set_active": ANY_CALLER,
    # Claim ledger
    "register_claim": ANY_CALLER,
    "register_claim_batch": ANY_CALLER,
    "mark_revealed": frozenset({Role.OPERATOR}),
    # Settlement engine
    "reveal_and_settle": ANY_CALLER,
    "reveal_and_settle_batch": ANY_CALLER,
    "set_zk_verifier": frozenset({Role.ADMIN}),
    # Shared administration
    "pause": frozenset({Role.ADMIN}),
    "unpause": frozenset({Role.ADMIN}),
    "grant_role": frozenset({Role.ADMIN}),
    "revoke_role": frozenset({Role.ADMIN}),
}


class AccessControl:
    """Role membership for one component plus the permission check.

    Usage:
        access = AccessControl(admin_id="0xAdmin")
        access.grant(Role.OPERATOR, "settlement-engine")
        access.require("mark_revealed", caller)
    """

    def __init__(
        self,
        admin_id: str,
        permissions: Mapping[str, FrozenSet[Role]] = PERMISSIONS,
    ) -> None:
        if not admin_id:
            raise ValueError("Admin identity must be non-empty")
        self._permissions = dict(permissions)
        self._members: Dict[Role, set[str]] = {role: set() for role in Role}
        self._members[Role.ADMIN].add(admin_id)

    def has_role(self, role: Role, actor_id: str) -> bool:
        return actor_id in self._members[role]

    def members(self, role: Role) -> frozenset[str]:
        return frozenset(self._members[role])

    def is_permitted(self, operation: str, caller: str) -> bool:
        allowed = self._permissions.get(operation)
        if allowed is None:
            return False
        if not allowed:
            return True
        return any(caller in self._members[role] for role in allowed)

    def require(self, operation: str, caller: str) -> None:
        """Raise AuthorizationError unless ``caller`` may run ``operation``."""
        if self.is_permitted(operation, caller):
            return
        allowed = self._permissions.get(operation)
        if allowed is None:
            raise AuthorizationError(f"Operation not in permission matrix: {operation}")
        roles = ", ".join(sorted(r.value for r in allowed))
        raise AuthorizationError(
            f"{caller!r} is not authorized for {operation} (requires one of: {roles})"
        )

    def grant(self, role: Role, actor_id: str) -> bool:
        """Add a member. Returns False if the actor already held the role."""
        if not actor_id:
            raise ValueError("Actor identity must be non-empty")
        if actor_id in self._members[role]:
            return False
        self._members[role].add(actor_id)
        return True

    def revoke(self, role: Role, actor_id: str) -> bool:
        """Remove a member. Returns False if the actor did not hold the role."""
        if actor_id not in self._members[role]:
            return False
        self._members[role].discard(actor_id)
        return True
