"""
LastWillRegistry contract: conditional succession of a property.

An owner names a beneficiary and two witnesses. The will becomes
executable once both witnesses approve, and an authorized executor then
moves the property to the beneficiary. Changing the beneficiary resets
both witness votes.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, List, Set

from ..addresses import ZERO_ADDRESS, to_address, to_nonzero_address
from ..chain import Chain
from ..exceptions import (
    AlreadyWitnessedError,
    InvalidArgumentError,
    NoActiveWillError,
    NotExecutorError,
    NotOwnerError,
    NotWitnessError,
    UnauthorizedError,
    WillAlreadyExistsError,
    WillNotFoundError,
    WillNotReadyError,
)
from ..logging import get_logger
from .base import Contract, transactional, view
from .property_nft import PropertyNFT

logger = get_logger(__name__)


class WitnessStatus(IntEnum):
    PENDING = 0
    APPROVED = 1
    REJECTED = 2


@dataclass
class Will:
    """
    A registered will.

    Attributes:
        property_id: Property the will disposes of
        testator: Owner who created the will
        beneficiary: Receives the property on execution
        witness1: First witness
        witness2: Second witness
        ipfs_hash: Content hash of the will document
        witness1_status: First witness vote
        witness2_status: Second witness vote
        is_active: False once revoked or executed
        is_executed: True once the property moved
        created_at: Ledger timestamp of creation
    """

    property_id: int
    testator: str
    beneficiary: str
    witness1: str
    witness2: str
    ipfs_hash: str
    witness1_status: WitnessStatus = WitnessStatus.PENDING
    witness2_status: WitnessStatus = WitnessStatus.PENDING
    is_active: bool = True
    is_executed: bool = False
    created_at: int = 0

    @property
    def fully_witnessed(self) -> bool:
        return (
            self.witness1_status == WitnessStatus.APPROVED
            and self.witness2_status == WitnessStatus.APPROVED
        )


class LastWillRegistry(Contract):
    """
    Registry of wills over PropertyNFT properties.

    Attributes:
        property_nft (PropertyNFT): Registry the properties live in
        owner (str): Manages the executor allow-list
    """

    CONTRACT_NAME = "LastWillRegistry"

    def __init__(self, chain: Chain, property_nft: PropertyNFT, owner: str):
        if not isinstance(property_nft, PropertyNFT):
            raise InvalidArgumentError("Invalid PropertyNFT address")
        owner = to_nonzero_address(owner, "Invalid owner address")
        super().__init__(chain)

        self.property_nft = property_nft
        self.owner = owner
        self._wills: Dict[int, Will] = {}
        self._authorized_executors: Set[str] = set()

    # -- executor allow-list ----------------------------------------------

    @transactional
    def set_executor_authorization(self, executor: str, authorized: bool, *, sender: str) -> None:
        """
        Add or remove an authorized executor.

        Args:
            executor: Executor address
            authorized: True to authorize, False to revoke
            sender: Registry owner
        """
        if self._sender(sender) != self.owner:
            raise UnauthorizedError("OwnableUnauthorizedAccount")
        executor = to_nonzero_address(executor, "Invalid executor address")

        if authorized:
            self._authorized_executors.add(executor)
        else:
            self._authorized_executors.discard(executor)
        self._emit("ExecutorAuthorized", executor=executor, authorized=authorized)
        logger.info("Executor %s authorization set to %s", executor, authorized)

    @view
    def is_authorized_executor(self, executor: str) -> bool:
        return to_address(executor) in self._authorized_executors

    authorized_executors = is_authorized_executor

    # -- lifecycle ----------------------------------------------------------

    @transactional
    def create_will(
        self,
        property_id: int,
        beneficiary: str,
        witness1: str,
        witness2: str,
        ipfs_hash: str,
        *,
        sender: str,
    ) -> Will:
        """
        Register a will for a property the sender owns.

        Args:
            property_id: Property to bequeath
            beneficiary: Heir
            witness1: First witness
            witness2: Second witness (distinct from the first)
            ipfs_hash: Content hash of the will document
            sender: Current property owner

        Returns:
            A copy of the stored will

        Raises:
            NotOwnerError: If the sender does not own the property
            InvalidArgumentError: On an invalid beneficiary, witnesses or hash
            WillAlreadyExistsError: If an active or executed will exists
        """
        sender = self._sender(sender)
        if self.property_nft.owner_of(property_id) != sender:
            raise NotOwnerError()
        beneficiary = self._validate_beneficiary(beneficiary, sender)
        witness1 = to_nonzero_address(witness1, "Invalid witness")
        witness2 = to_nonzero_address(witness2, "Invalid witness")
        if witness1 == witness2:
            raise InvalidArgumentError("Witnesses must be different")
        if not ipfs_hash:
            raise InvalidArgumentError("IPFS hash required")

        existing = self._wills.get(property_id)
        if existing is not None and (existing.is_active or existing.is_executed):
            raise WillAlreadyExistsError()

        will = Will(
            property_id=property_id,
            testator=sender,
            beneficiary=beneficiary,
            witness1=witness1,
            witness2=witness2,
            ipfs_hash=ipfs_hash,
            created_at=self.chain.now(),
        )
        self._wills[property_id] = will

        self._emit("WillCreated", property_id=property_id, owner=sender, beneficiary=beneficiary)
        logger.info("Will created for property %d (beneficiary %s)", property_id, beneficiary)
        return replace(will)

    @transactional
    def witness_will(self, property_id: int, approve: bool, *, sender: str) -> None:
        """
        Record a witness vote.

        Raises:
            NoActiveWillError: If no active will exists
            NotWitnessError: If the sender is not one of the two witnesses
            AlreadyWitnessedError: If the sender already voted
        """
        sender = self._sender(sender)
        will = self._require_active(property_id)
        status = WitnessStatus.APPROVED if approve else WitnessStatus.REJECTED

        if sender == will.witness1:
            if will.witness1_status != WitnessStatus.PENDING:
                raise AlreadyWitnessedError()
            will.witness1_status = status
        elif sender == will.witness2:
            if will.witness2_status != WitnessStatus.PENDING:
                raise AlreadyWitnessedError()
            will.witness2_status = status
        else:
            raise NotWitnessError()

        self._emit("WillWitnessed", property_id=property_id, witness=sender, approved=approve)
        logger.info(
            "Will for property %d %s by %s",
            property_id, "approved" if approve else "rejected", sender,
        )

    @transactional
    def execute_will(self, property_id: int, *, sender: str) -> None:
        """
        Move the property to the beneficiary.

        The registry must be approved to move the property.

        Raises:
            NotExecutorError: If the sender is not an authorized executor
            NoActiveWillError: If no active will exists (including re-execution)
            WillNotReadyError: Unless both witnesses approved
            NotOwnerError: If the testator has since parted with the property
        """
        sender = self._sender(sender)
        if sender not in self._authorized_executors:
            raise NotExecutorError()
        will = self._require_active(property_id)
        if not will.fully_witnessed:
            raise WillNotReadyError()

        if self.property_nft.owner_of(property_id) != will.testator:
            raise NotOwnerError("Testator no longer owns the property")
        self.property_nft.transfer_from(
            will.testator, will.beneficiary, property_id, sender=self.address
        )
        will.is_executed = True
        will.is_active = False

        self._emit(
            "WillExecuted",
            property_id=property_id,
            beneficiary=will.beneficiary,
            executor=sender,
        )
        logger.info(
            "Will for property %d executed by %s",
            property_id,
            sender,
            extra={"extra": {"property_id": property_id, "beneficiary": will.beneficiary}},
        )

    @transactional
    def revoke_will(self, property_id: int, *, sender: str) -> None:
        """
        Revoke an active will; the property stays put.

        Raises:
            NoActiveWillError: If no active will exists
            NotOwnerError: If the sender does not own the property
        """
        sender = self._sender(sender)
        will = self._require_active(property_id)
        if self.property_nft.owner_of(property_id) != sender:
            raise NotOwnerError()

        will.is_active = False
        self._emit("WillRevoked", property_id=property_id, owner=sender)
        logger.info("Will for property %d revoked", property_id)

    @transactional
    def update_beneficiary(self, property_id: int, new_beneficiary: str, *, sender: str) -> None:
        """
        Replace the beneficiary and reset both witness votes.

        Raises:
            NotOwnerError: If the sender does not own the property
            NoActiveWillError: If no active will exists
            InvalidArgumentError: On a zero or self beneficiary
        """
        sender = self._sender(sender)
        if self.property_nft.owner_of(property_id) != sender:
            raise NotOwnerError()
        will = self._require_active(property_id)
        new_beneficiary = self._validate_beneficiary(new_beneficiary, sender)

        old_beneficiary = will.beneficiary
        will.beneficiary = new_beneficiary
        will.witness1_status = WitnessStatus.PENDING
        will.witness2_status = WitnessStatus.PENDING

        self._emit(
            "WillTransferred",
            property_id=property_id,
            old_beneficiary=old_beneficiary,
            new_beneficiary=new_beneficiary,
        )
        logger.info("Will for property %d now benefits %s", property_id, new_beneficiary)

    # -- views --------------------------------------------------------------

    @view
    def get_will(self, property_id: int) -> Will:
        will = self._wills.get(property_id)
        if will is None:
            raise WillNotFoundError(f"No will for property {property_id}")
        return replace(will)

    @view
    def has_active_will(self, property_id: int) -> bool:
        will = self._wills.get(property_id)
        return will is not None and will.is_active

    @view
    def is_will_ready_for_execution(self, property_id: int) -> bool:
        will = self._wills.get(property_id)
        return will is not None and will.is_active and will.fully_witnessed

    @view
    def get_wills_for_beneficiary(self, beneficiary: str) -> List[Will]:
        beneficiary = to_address(beneficiary)
        return [
            replace(w) for w in self._wills.values()
            if w.is_active and w.beneficiary == beneficiary
        ]

    # -- helpers ------------------------------------------------------------

    def _require_active(self, property_id: int) -> Will:
        will = self._wills.get(property_id)
        if will is None or not will.is_active:
            raise NoActiveWillError()
        return will

    @staticmethod
    def _validate_beneficiary(beneficiary: str, owner: str) -> str:
        beneficiary = to_address(beneficiary, "Invalid beneficiary")
        if beneficiary == ZERO_ADDRESS:
            raise InvalidArgumentError("Invalid beneficiary")
        if beneficiary == owner:
            raise InvalidArgumentError("Cannot be your own beneficiary")
        return beneficiary
