"""
Tests for the Role Registry.

Validates:
- Admin-only grant and revoke
- Idempotent grants and revocations
- Renouncing and the last-admin lock-out scenario
"""

from __future__ import annotations

import pytest

from mintgate.governance.roles import RoleRegistry
from mintgate.policy.errors import ErrorKind, UnauthorizedError
from mintgate.policy.schema import ZERO_ADDRESS, Role


class TestRoleRegistry:
    """Test capability grants."""

    def setup_method(self):
        self.registry = RoleRegistry("alice")

    def test_initial_admin_holds_admin_only(self):
        assert self.registry.has("alice", Role.ADMIN)
        assert not self.registry.has("alice", Role.MINTER)
        assert self.registry.members(Role.ADMIN) == ["alice"]

    def test_null_initial_admin_rejected(self):
        with pytest.raises(ValueError):
            RoleRegistry("")
        with pytest.raises(ValueError):
            RoleRegistry(ZERO_ADDRESS)

    def test_admin_can_grant(self):
        assert self.registry.grant("alice", "bob", Role.MINTER) is True
        assert self.registry.has("bob", Role.MINTER)

    def test_grant_is_idempotent(self):
        self.registry.grant("alice", "bob", Role.PAUSER)
        assert self.registry.grant("alice", "bob", Role.PAUSER) is False
        assert self.registry.members(Role.PAUSER) == ["bob"]

    def test_non_admin_cannot_grant(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            self.registry.grant("mallory", "mallory", Role.MINTER)
        assert exc_info.value.kind == ErrorKind.UNAUTHORIZED
        assert not self.registry.has("mallory", Role.MINTER)

    def test_non_admin_cannot_revoke(self):
        self.registry.grant("alice", "bob", Role.MINTER)
        with pytest.raises(UnauthorizedError):
            self.registry.revoke("bob", "bob", Role.MINTER)
        assert self.registry.has("bob", Role.MINTER)

    def test_revoke_missing_grant_is_noop(self):
        assert self.registry.revoke("alice", "bob", Role.GOVERNANCE) is False

    def test_grant_to_null_principal_rejected(self):
        with pytest.raises(ValueError):
            self.registry.grant("alice", ZERO_ADDRESS, Role.MINTER)

    def test_roles_are_independent(self):
        self.registry.grant("alice", "bob", Role.MINTER)
        assert not self.registry.has("bob", Role.PAUSER)
        assert not self.registry.has("bob", Role.GOVERNANCE)
        assert not self.registry.has("bob", Role.ADMIN)

    def test_renounce_own_role(self):
        self.registry.grant("alice", "bob", Role.MINTER)
        assert self.registry.renounce("bob", Role.MINTER) is True
        assert not self.registry.has("bob", Role.MINTER)
        assert self.registry.renounce("bob", Role.MINTER) is False

    def test_require_raises_for_missing_role(self):
        with pytest.raises(UnauthorizedError):
            self.registry.require("bob", Role.GOVERNANCE)
        self.registry.require("alice", Role.ADMIN)


class TestAdminLockOut:
    """Revoking every admin is permitted and locks administration for good."""

    def test_last_admin_can_revoke_itself(self):
        registry = RoleRegistry("alice")
        assert registry.revoke("alice", "alice", Role.ADMIN) is True
        assert registry.members(Role.ADMIN) == []

    def test_no_one_can_grant_after_lock_out(self):
        registry = RoleRegistry("alice")
        registry.grant("alice", "bob", Role.ADMIN)
        registry.revoke("bob", "alice", Role.ADMIN)
        registry.renounce("bob", Role.ADMIN)

        for principal in ("alice", "bob"):
            with pytest.raises(UnauthorizedError):
                registry.grant(principal, principal, Role.ADMIN)
