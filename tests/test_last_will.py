"""Tests for LastWillRegistry."""

import pytest

from propchain.addresses import ZERO_ADDRESS
from propchain.contracts import LastWillRegistry, PropertyNFT, WitnessStatus
from propchain.exceptions import (
    AlreadyWitnessedError,
    InvalidArgumentError,
    NoActiveWillError,
    NotApprovedError,
    NotExecutorError,
    NotOwnerError,
    NotWitnessError,
    UnauthorizedError,
    WillAlreadyExistsError,
    WillNotFoundError,
    WillNotReadyError,
)


@pytest.fixture
def will(property_nft: PropertyNFT, will_registry: LastWillRegistry, accounts, certified_property: int):
    """Active will of the seller's property in favour of alice."""
    seller = accounts["seller"]
    property_nft.approve(will_registry.address, certified_property, sender=seller)
    return will_registry.create_will(
        certified_property,
        accounts["alice"],
        accounts["witness1"],
        accounts["witness2"],
        "ipfs://will",
        sender=seller,
    )


def approve_both(registry: LastWillRegistry, property_id: int, accounts) -> None:
    registry.witness_will(property_id, True, sender=accounts["witness1"])
    registry.witness_will(property_id, True, sender=accounts["witness2"])


class TestExecutors:
    """Tests for the executor allow-list."""

    def test_owner_manages_executors(self, will_registry: LastWillRegistry, accounts) -> None:
        assert will_registry.is_authorized_executor(accounts["executor"])

        will_registry.set_executor_authorization(accounts["executor"], False, sender=accounts["admin"])

        assert not will_registry.authorized_executors(accounts["executor"])

    def test_non_owner_cannot_authorize(self, will_registry: LastWillRegistry, accounts) -> None:
        with pytest.raises(UnauthorizedError, match="OwnableUnauthorizedAccount"):
            will_registry.set_executor_authorization(accounts["bob"], True, sender=accounts["bob"])


class TestCreateWill:
    """Tests for will creation."""

    def test_create(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        stored = will_registry.get_will(certified_property)

        assert stored.beneficiary == accounts["alice"]
        assert stored.testator == accounts["seller"]
        assert stored.witness1_status == WitnessStatus.PENDING
        assert stored.is_active and not stored.is_executed
        assert will_registry.has_active_will(certified_property)
        assert not will_registry.is_will_ready_for_execution(certified_property)
        assert [w.property_id for w in will_registry.get_wills_for_beneficiary(accounts["alice"])] == [
            certified_property
        ]

    def test_returned_will_is_a_copy(self, will_registry: LastWillRegistry, will, certified_property: int) -> None:
        will.is_active = False

        assert will_registry.has_active_will(certified_property)

    def test_only_owner_creates(self, will_registry: LastWillRegistry, accounts, certified_property: int) -> None:
        with pytest.raises(NotOwnerError):
            will_registry.create_will(
                certified_property, accounts["alice"], accounts["witness1"], accounts["witness2"], "ipfs://w",
                sender=accounts["bob"],
            )

    def test_validation(self, will_registry: LastWillRegistry, accounts, certified_property: int) -> None:
        seller, w1, w2 = accounts["seller"], accounts["witness1"], accounts["witness2"]

        with pytest.raises(InvalidArgumentError, match="Invalid beneficiary"):
            will_registry.create_will(certified_property, ZERO_ADDRESS, w1, w2, "ipfs://w", sender=seller)
        with pytest.raises(InvalidArgumentError, match="own beneficiary"):
            will_registry.create_will(certified_property, seller, w1, w2, "ipfs://w", sender=seller)
        with pytest.raises(InvalidArgumentError, match="Witnesses must be different"):
            will_registry.create_will(certified_property, accounts["alice"], w1, w1, "ipfs://w", sender=seller)
        with pytest.raises(InvalidArgumentError, match="IPFS hash required"):
            will_registry.create_will(certified_property, accounts["alice"], w1, w2, "", sender=seller)

    def test_duplicate_will(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        with pytest.raises(WillAlreadyExistsError):
            will_registry.create_will(
                certified_property, accounts["bob"], accounts["witness1"], accounts["witness2"], "ipfs://w2",
                sender=accounts["seller"],
            )

    def test_recreate_after_revoke(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        will_registry.revoke_will(certified_property, sender=accounts["seller"])

        recreated = will_registry.create_will(
            certified_property, accounts["bob"], accounts["witness1"], accounts["witness2"], "ipfs://w2",
            sender=accounts["seller"],
        )

        assert recreated.beneficiary == accounts["bob"]

    def test_missing_will(self, will_registry: LastWillRegistry, certified_property: int) -> None:
        with pytest.raises(WillNotFoundError):
            will_registry.get_will(certified_property)
        assert not will_registry.has_active_will(certified_property)


class TestWitnessing:
    """Tests for witness votes."""

    def test_both_approve(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        approve_both(will_registry, certified_property, accounts)

        assert will_registry.is_will_ready_for_execution(certified_property)
        assert will_registry.get_will(certified_property).fully_witnessed

    def test_non_witness(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        with pytest.raises(NotWitnessError):
            will_registry.witness_will(certified_property, True, sender=accounts["bob"])

    def test_vote_once(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        will_registry.witness_will(certified_property, False, sender=accounts["witness1"])

        with pytest.raises(AlreadyWitnessedError):
            will_registry.witness_will(certified_property, True, sender=accounts["witness1"])

    def test_no_will(self, will_registry: LastWillRegistry, accounts, certified_property: int) -> None:
        with pytest.raises(NoActiveWillError):
            will_registry.witness_will(certified_property, True, sender=accounts["witness1"])


class TestExecution:
    """Tests for will execution."""

    def test_execute(
        self, property_nft: PropertyNFT, will_registry: LastWillRegistry, will, accounts, certified_property: int
    ) -> None:
        approve_both(will_registry, certified_property, accounts)

        will_registry.execute_will(certified_property, sender=accounts["executor"])

        stored = will_registry.get_will(certified_property)
        assert property_nft.owner_of(certified_property) == accounts["alice"]
        assert stored.is_executed and not stored.is_active
        with pytest.raises(NoActiveWillError):
            will_registry.execute_will(certified_property, sender=accounts["executor"])

    def test_executed_will_cannot_be_recreated(
        self, property_nft: PropertyNFT, will_registry: LastWillRegistry, will, accounts, certified_property: int
    ) -> None:
        approve_both(will_registry, certified_property, accounts)
        will_registry.execute_will(certified_property, sender=accounts["executor"])

        with pytest.raises(WillAlreadyExistsError):
            will_registry.create_will(
                certified_property, accounts["bob"], accounts["witness1"], accounts["witness2"], "ipfs://w",
                sender=accounts["alice"],
            )

    def test_needs_both_approvals(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        will_registry.witness_will(certified_property, True, sender=accounts["witness1"])

        with pytest.raises(WillNotReadyError):
            will_registry.execute_will(certified_property, sender=accounts["executor"])

    def test_rejection_blocks_execution(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        will_registry.witness_will(certified_property, True, sender=accounts["witness1"])
        will_registry.witness_will(certified_property, False, sender=accounts["witness2"])

        with pytest.raises(WillNotReadyError):
            will_registry.execute_will(certified_property, sender=accounts["executor"])

    def test_only_executor(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        approve_both(will_registry, certified_property, accounts)

        with pytest.raises(NotExecutorError):
            will_registry.execute_will(certified_property, sender=accounts["alice"])

    def test_execution_needs_registry_approval(
        self, property_nft: PropertyNFT, will_registry: LastWillRegistry, will, accounts, certified_property: int
    ) -> None:
        property_nft.approve(ZERO_ADDRESS, certified_property, sender=accounts["seller"])
        approve_both(will_registry, certified_property, accounts)

        with pytest.raises(NotApprovedError):
            will_registry.execute_will(certified_property, sender=accounts["executor"])

        assert will_registry.has_active_will(certified_property)
        assert property_nft.owner_of(certified_property) == accounts["seller"]

    def test_sold_after_will_creation(
        self, property_nft: PropertyNFT, will_registry: LastWillRegistry, will, accounts, certified_property: int
    ) -> None:
        seller, bob = accounts["seller"], accounts["bob"]
        property_nft.transfer_from(seller, bob, certified_property, sender=seller)
        property_nft.set_approval_for_all(will_registry.address, True, sender=bob)
        approve_both(will_registry, certified_property, accounts)

        with pytest.raises(NotOwnerError, match="Testator no longer owns the property"):
            will_registry.execute_will(certified_property, sender=accounts["executor"])

        assert property_nft.owner_of(certified_property) == bob
        assert will_registry.has_active_will(certified_property)


class TestRevokeAndUpdate:
    """Tests for revocation and beneficiary changes."""

    def test_revoke(self, property_nft: PropertyNFT, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        will_registry.revoke_will(certified_property, sender=accounts["seller"])

        assert not will_registry.has_active_will(certified_property)
        assert property_nft.owner_of(certified_property) == accounts["seller"]
        with pytest.raises(NoActiveWillError):
            will_registry.revoke_will(certified_property, sender=accounts["seller"])

    def test_only_owner_revokes(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        with pytest.raises(NotOwnerError):
            will_registry.revoke_will(certified_property, sender=accounts["alice"])

    def test_update_beneficiary_resets_votes(
        self, will_registry: LastWillRegistry, will, accounts, certified_property: int
    ) -> None:
        approve_both(will_registry, certified_property, accounts)

        will_registry.update_beneficiary(certified_property, accounts["bob"], sender=accounts["seller"])

        stored = will_registry.get_will(certified_property)
        assert stored.beneficiary == accounts["bob"]
        assert stored.witness1_status == WitnessStatus.PENDING
        assert stored.witness2_status == WitnessStatus.PENDING
        assert not will_registry.is_will_ready_for_execution(certified_property)
        assert will_registry.get_wills_for_beneficiary(accounts["alice"]) == []

    def test_update_beneficiary_checks(self, will_registry: LastWillRegistry, will, accounts, certified_property: int) -> None:
        with pytest.raises(NotOwnerError):
            will_registry.update_beneficiary(certified_property, accounts["bob"], sender=accounts["bob"])
        with pytest.raises(InvalidArgumentError):
            will_registry.update_beneficiary(certified_property, accounts["seller"], sender=accounts["seller"])
