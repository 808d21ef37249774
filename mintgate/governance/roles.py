"""
Role Registry — capability grants for every principal.

Every engine operation begins with a capability check against this registry.
The role set is fixed (``Role``); ``ADMIN`` holders administer all of it.

The registry guarantees an admin exists only at construction. Revoking or
renouncing the last ``ADMIN`` grant is permitted and locks role
administration for good.
"""

from __future__ import annotations

import logging

from mintgate.policy.errors import UnauthorizedError
from mintgate.policy.schema import Role, is_null_principal

logger = logging.getLogger(__name__)


class RoleRegistry:
    """
    Relation ``(principal, role) -> granted``.

    Callers emit their own audit records; the registry only updates the
    relation and logs.
    """

    def __init__(self, initial_admin: str) -> None:
        """
        Initialize with a single admin.

        Args:
            initial_admin: Principal that receives ``Role.ADMIN``.

        Raises:
            ValueError: If ``initial_admin`` is the null principal.
        """
        if is_null_principal(initial_admin):
            raise ValueError("initial_admin must be a non-null principal")
        self._grants: dict[Role, set[str]] = {role: set() for role in Role}
        self._grants[Role.ADMIN].add(initial_admin)

    def has(self, principal: str | None, role: Role) -> bool:
        if principal is None:
            return False
        return principal in self._grants[role]

    def require(self, principal: str | None, role: Role) -> None:
        """Raise ``UnauthorizedError`` unless ``principal`` holds ``role``."""
        if not self.has(principal, role):
            raise UnauthorizedError(
                f"Principal {principal!r} lacks role {role.value}",
                principal=principal,
                role=role.value,
            )

    def grant(self, caller: str, principal: str, role: Role) -> bool:
        """
        Grant ``role`` to ``principal``.

        Returns:
            True if the grant is new, False if it was already held.

        Raises:
            UnauthorizedError: If ``caller`` lacks ``Role.ADMIN``.
            ValueError: If ``principal`` is the null principal.
        """
        self.require(caller, Role.ADMIN)
        if is_null_principal(principal):
            raise ValueError("cannot grant a role to the null principal")
        if principal in self._grants[role]:
            return False
        self._grants[role].add(principal)
        logger.info("Role granted: role=%s principal=%s by=%s", role.value, principal, caller)
        return True

    def revoke(self, caller: str, principal: str, role: Role) -> bool:
        """
        Revoke ``role`` from ``principal``.

        Returns:
            True if a grant was removed, False if none was held.

        Raises:
            UnauthorizedError: If ``caller`` lacks ``Role.ADMIN``.
        """
        self.require(caller, Role.ADMIN)
        if principal not in self._grants[role]:
            return False
        self._grants[role].discard(principal)
        logger.info("Role revoked: role=%s principal=%s by=%s", role.value, principal, caller)
        if role == Role.ADMIN and not self._grants[Role.ADMIN]:
            logger.warning("Last admin revoked; role administration is now locked")
        return True

    def renounce(self, principal: str, role: Role) -> bool:
        """Drop ``principal``'s own grant of ``role``. Needs no admin."""
        if principal not in self._grants[role]:
            return False
        self._grants[role].discard(principal)
        logger.info("Role renounced: role=%s principal=%s", role.value, principal)
        if role == Role.ADMIN and not self._grants[Role.ADMIN]:
            logger.warning("Last admin renounced; role administration is now locked")
        return True

    def restore_grant(self, principal: str, role: Role, granted: bool) -> None:
        """
        Set a grant directly, without an authorization check.

        Used to rebuild the relation from the audit trail and to undo a grant
        whose audit record could not be written.
        """
        if granted:
            self._grants[role].add(principal)
        else:
            self._grants[role].discard(principal)

    def members(self, role: Role) -> list[str]:
        """Return the holders of ``role`` in sorted order."""
        return sorted(self._grants[role])
