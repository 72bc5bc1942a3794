"""
FractionTokenFactory contract: fractionalization and defractionalization.

Fractionalizing a certified property moves it into the factory's custody
and issues a FractionalToken whose full supply goes to the former owner.
Whoever later holds exactly 100% of that supply can either take the
property back (burning the shares) or hand it straight to someone else.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..addresses import ZERO_ADDRESS, to_address, to_nonzero_address
from ..chain import Chain
from ..exceptions import (
    AlreadyFractionalizedError,
    IncompleteOwnershipError,
    InvalidArgumentError,
    InvalidStateError,
    NotCertifiedError,
    NotOwnerError,
)
from ..logging import get_logger
from .base import Contract, transactional, view
from .fractional_token import FractionalToken
from .property_nft import PropertyNFT

logger = get_logger(__name__)


@dataclass
class FractionRecord:
    """Bookkeeping for one fractionalization."""

    property_id: int
    token_address: str
    creator: str
    initial_supply: int
    created_at: int


class FractionTokenFactory(Contract):
    """
    Issues and redeems fractional ownership of certified properties.

    Attributes:
        property_nft (PropertyNFT): Registry the properties live in
    """

    CONTRACT_NAME = "FractionTokenFactory"

    def __init__(self, chain: Chain, property_nft: PropertyNFT):
        """
        Deploy the factory.

        Args:
            chain: Ledger to deploy on
            property_nft: Property registry this factory takes custody from
        """
        if not isinstance(property_nft, PropertyNFT):
            raise InvalidArgumentError("Invalid PropertyNFT address")
        super().__init__(chain)

        self.property_nft = property_nft
        self._active: Dict[int, FractionRecord] = {}
        self._history: List[FractionRecord] = []

    @transactional
    def fractionalize(
        self,
        property_id: int,
        name: str,
        symbol: str,
        total_supply: int,
        *,
        sender: str,
    ) -> str:
        """
        Fractionalize a certified property owned by the sender.

        The factory must have been approved for the property beforehand.

        Args:
            property_id: Property to fractionalize
            name: Share token name
            symbol: Share token symbol
            total_supply: Fixed share supply (smallest units)
            sender: Current sole owner

        Returns:
            Address of the new FractionalToken

        Raises:
            AlreadyFractionalizedError: If a share token already exists
            NotOwnerError: If the sender does not own the property
            NotCertifiedError: If the property is not certified
        """
        sender = self._sender(sender)
        if property_id in self._active:
            raise AlreadyFractionalizedError()
        if self.property_nft.owner_of(property_id) != sender:
            raise NotOwnerError("Only property owner can fractionalize")
        if not self.property_nft.is_certified(property_id):
            raise NotCertifiedError()

        self.property_nft.transfer_from(sender, self.address, property_id, sender=self.address)
        token = FractionalToken(
            self.chain,
            name=name,
            symbol=symbol,
            total_supply=total_supply,
            property_id=property_id,
            initial_holder=sender,
            minter=self.address,
        )

        record = FractionRecord(
            property_id=property_id,
            token_address=token.address,
            creator=sender,
            initial_supply=total_supply,
            created_at=self.chain.now(),
        )
        self._active[property_id] = record
        self._history.append(record)

        self._emit(
            "FractionTokenCreated",
            property_id=property_id,
            token=token.address,
            creator=sender,
            total_supply=total_supply,
        )
        logger.info(
            "Property %d fractionalized into %s (%s, supply %d)",
            property_id, token.address, symbol, total_supply,
        )
        return token.address

    create_fraction_token = fractionalize

    @transactional
    def defractionalize(self, property_id: int, *, sender: str) -> None:
        """
        Burn 100% of the shares and return the property to the sender.

        Raises:
            InvalidStateError: If the property is not fractionalized
            IncompleteOwnershipError: Unless the sender holds exactly the total supply
        """
        sender = self._sender(sender)
        token = self._require_token(property_id)
        balance = token.balance_of(sender)
        if balance != token.total_supply:
            raise IncompleteOwnershipError()

        token.burn_from(sender, balance, sender=self.address)
        self.property_nft.transfer_from(self.address, sender, property_id, sender=self.address)
        del self._active[property_id]

        self._emit("PropertyDefractionalized", property_id=property_id, owner=sender)
        logger.info("Property %d defractionalized to %s", property_id, sender)

    defractionalize_property = defractionalize

    @transactional
    def transfer_full_ownership(self, property_id: int, to: str, *, sender: str) -> None:
        """
        Hand the property to ``to`` without burning the shares.

        The share token is retired and detached from the property.

        Raises:
            InvalidArgumentError: If ``to`` is the zero address
            IncompleteOwnershipError: Unless the sender holds exactly the total supply
        """
        sender = self._sender(sender)
        to = to_nonzero_address(to, "Invalid recipient")
        token = self._require_token(property_id)
        if token.balance_of(sender) != token.total_supply:
            raise IncompleteOwnershipError()

        self.property_nft.transfer_from(self.address, to, property_id, sender=self.address)
        token.retire(sender=self.address)
        del self._active[property_id]

        self._emit("FullOwnershipTransferred", property_id=property_id, from_=sender, to=to)
        logger.info("Full ownership of property %d transferred %s -> %s", property_id, sender, to)

    @view
    def is_property_fractionalized(self, property_id: int) -> bool:
        return property_id in self._active

    @view
    def get_fraction_token(self, property_id: int) -> str:
        record = self._active.get(property_id)
        return record.token_address if record else ZERO_ADDRESS

    property_to_fraction_token = get_fraction_token

    @view
    def get_token_contract(self, property_id: int) -> Optional[FractionalToken]:
        record = self._active.get(property_id)
        if record is None:
            return None
        return self.chain.contract_at(record.token_address, FractionalToken)

    @view
    def has_full_ownership(self, property_id: int, account: str) -> bool:
        token = self.get_token_contract(property_id)
        return token is not None and token.balance_of(account) == token.total_supply

    @view
    def get_fraction_balance(self, property_id: int, account: str) -> int:
        token = self.get_token_contract(property_id)
        return token.balance_of(to_address(account)) if token else 0

    balance_of = get_fraction_balance

    @view
    def get_history(self) -> List[FractionRecord]:
        """Every fractionalization ever performed, oldest first."""
        return list(self._history)

    def _require_token(self, property_id: int) -> FractionalToken:
        token = self.get_token_contract(property_id)
        if token is None:
            raise InvalidStateError("Property not fractionalized")
        return token
