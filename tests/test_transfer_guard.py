"""
Tests for the Deny List and Transfer Guard.
"""

from __future__ import annotations

import pytest

from mintgate.policy.errors import (
    ErrorKind,
    InvalidDestinationError,
    RecipientBlacklistedError,
    SelfTransferToContractError,
    SenderBlacklistedError,
    TransferLimitExceededError,
)
from mintgate.policy.schema import ZERO_ADDRESS
from mintgate.policy.transfer_guard import DenyList, TransferGuard

CONTRACT = "0xcontract"


class TestDenyList:
    def setup_method(self):
        self.deny_list = DenyList()

    def test_list_and_unlist(self):
        assert self.deny_list.set_blacklisted("x", True) is True
        assert self.deny_list.is_blacklisted("x")
        assert self.deny_list.set_blacklisted("x", True) is False
        assert self.deny_list.set_blacklisted("x", False) is True
        assert not self.deny_list.is_blacklisted("x")
        assert self.deny_list.listed() == []

    @pytest.mark.parametrize("principal", ["", None, ZERO_ADDRESS])
    def test_null_principal_rejected(self, principal):
        with pytest.raises(InvalidDestinationError):
            self.deny_list.set_blacklisted(principal, True)


class TestTransferGuard:
    def setup_method(self):
        self.deny_list = DenyList()
        self.guard = TransferGuard(self.deny_list, transfer_limit_per_tx=100, contract_address=CONTRACT)

    def test_clean_transfer_passes(self):
        self.guard.check_transfer("a", "b", 100)

    def test_blacklisted_sender(self):
        self.deny_list.set_blacklisted("a", True)
        with pytest.raises(SenderBlacklistedError) as exc_info:
            self.guard.check_transfer("a", "b", 1)
        assert exc_info.value.kind == ErrorKind.SENDER_BLACKLISTED

    def test_blacklisted_recipient(self):
        self.deny_list.set_blacklisted("b", True)
        with pytest.raises(RecipientBlacklistedError) as exc_info:
            self.guard.check_transfer("a", "b", 1)
        assert exc_info.value.kind == ErrorKind.RECIPIENT_BLACKLISTED

    def test_sender_checked_before_recipient(self):
        self.deny_list.set_blacklisted("a", True)
        self.deny_list.set_blacklisted("b", True)
        with pytest.raises(SenderBlacklistedError):
            self.guard.check_transfer("a", "b", 1)

    def test_ceiling(self):
        with pytest.raises(TransferLimitExceededError) as exc_info:
            self.guard.check_transfer("a", "b", 101)
        assert exc_info.value.kind == ErrorKind.TRANSFER_LIMIT_EXCEEDED

    def test_transfer_to_contract(self):
        with pytest.raises(SelfTransferToContractError) as exc_info:
            self.guard.check_transfer("a", CONTRACT, 1)
        assert exc_info.value.kind == ErrorKind.SELF_TRANSFER_TO_CONTRACT

    def test_listing_takes_effect_on_next_call(self):
        self.guard.check_transfer("a", "b", 1)
        self.deny_list.set_blacklisted("b", True)
        with pytest.raises(RecipientBlacklistedError):
            self.guard.check_transfer("a", "b", 1)
        self.deny_list.set_blacklisted("b", False)
        self.guard.check_transfer("a", "b", 1)
