"""
HybridEscrow and EscrowFactory contracts.

An escrow holds the buyer's payment and the seller's asset until both
are in, then swaps them atomically. The asset is either a whole property
or an amount of a property's fractional shares.

State machine:
    CREATED -> BUYER_DEPOSITED | SELLER_DEPOSITED -> BOTH_DEPOSITED
    any non-terminal state -> FINALIZED (buyer, both deposited) | CANCELLED (either party)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, NamedTuple, Union

from ..addresses import to_address, to_nonzero_address
from ..chain import Chain
from ..exceptions import (
    AlreadyDepositedError,
    ContractNotFoundError,
    EscrowIncompleteError,
    IncorrectPaymentError,
    InvalidArgumentError,
    NoActiveEscrowError,
    OnlyBuyerError,
    OnlySellerError,
    UnauthorizedError,
    WrongAssetKindError,
)
from ..logging import get_logger
from .base import Contract, transactional, view
from .fractional_token import FractionalToken
from .property_nft import PropertyNFT

logger = get_logger(__name__)


class AssetKind(Enum):
    WHOLE = 0
    FRACTIONAL = 1


@dataclass(frozen=True)
class WholeAsset:
    """A whole property, by token id."""

    token_id: int
    kind = AssetKind.WHOLE


@dataclass(frozen=True)
class FractionalAsset:
    """An amount of a property's fractional shares."""

    token_address: str
    amount: int
    kind = AssetKind.FRACTIONAL


EscrowAsset = Union[WholeAsset, FractionalAsset]


class EscrowState(Enum):
    CREATED = "created"
    BUYER_DEPOSITED = "buyer_deposited"
    SELLER_DEPOSITED = "seller_deposited"
    BOTH_DEPOSITED = "both_deposited"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (EscrowState.FINALIZED, EscrowState.CANCELLED)


class EscrowStatus(NamedTuple):
    buyer_deposited: bool
    seller_deposited: bool
    state: EscrowState


class HybridEscrow(Contract):
    """
    Two-party escrow of payment against a whole or fractional asset.

    Attributes:
        buyer (str): Pays the price, receives the asset
        seller (str): Deposits the asset, receives the price
        price (int): Agreed price in wei
        asset (EscrowAsset): What is being sold
        property_nft (PropertyNFT): Registry whole assets live in
    """

    CONTRACT_NAME = "HybridEscrow"

    def __init__(
        self,
        chain: Chain,
        buyer: str,
        seller: str,
        price: int,
        asset: EscrowAsset,
        property_nft: PropertyNFT,
    ):
        buyer = to_nonzero_address(buyer, "Invalid buyer")
        seller = to_nonzero_address(seller, "Invalid seller")
        if buyer == seller:
            raise InvalidArgumentError("Buyer and seller must differ")
        if not isinstance(price, int) or price <= 0:
            raise InvalidArgumentError("Price must be greater than 0")
        asset = _validate_asset(chain, asset)

        super().__init__(chain)

        self.buyer = buyer
        self.seller = seller
        self.price = price
        self.asset = asset
        self.property_nft = property_nft
        self.buyer_deposited = False
        self.seller_deposited = False
        self.state = EscrowState.CREATED
        self.created_at = chain.now()

    @property
    @view
    def escrow_type(self) -> AssetKind:
        return self.asset.kind

    # -- deposits -----------------------------------------------------------

    @transactional
    def deposit_payment(self, *, value: int, sender: str) -> None:
        """
        Deposit the agreed price.

        Args:
            value: Attached payment in wei (must equal the price)
            sender: The buyer

        Raises:
            NoActiveEscrowError: If the escrow is finalized or cancelled
            OnlyBuyerError: If the sender is not the buyer
            AlreadyDepositedError: On a second payment
            IncorrectPaymentError: If value differs from the price
        """
        sender = self._sender(sender)
        self._require_active()
        if sender != self.buyer:
            raise OnlyBuyerError()
        if self.buyer_deposited:
            raise AlreadyDepositedError("Payment already deposited")
        if value != self.price:
            raise IncorrectPaymentError()

        self.chain.transfer(sender, self.address, value)
        self.buyer_deposited = True
        self._advance()

        self._emit("PaymentDeposited", buyer=sender, amount=value)
        logger.info("Escrow %s: payment of %d deposited", self.address, value)

    @transactional
    def deposit_asset(self, *, sender: str) -> None:
        """
        Move the asset into escrow custody.

        The escrow must already be approved for the property, or hold an
        allowance covering the fractional amount.

        Raises:
            NoActiveEscrowError: If the escrow is finalized or cancelled
            OnlySellerError: If the sender is not the seller
            AlreadyDepositedError: On a second deposit
        """
        sender = self._sender(sender)
        self._require_active()
        if sender != self.seller:
            raise OnlySellerError()
        if self.seller_deposited:
            raise AlreadyDepositedError("Asset already deposited")

        self._move_asset(self.seller, self.address)
        self.seller_deposited = True
        self._advance()

        self._emit("AssetDeposited", seller=sender, kind=self.asset.kind.value)
        logger.info("Escrow %s: %s asset deposited", self.address, self.asset.kind.name)

    @transactional
    def deposit_nft_asset(self, *, sender: str) -> None:
        if not isinstance(self.asset, WholeAsset):
            raise WrongAssetKindError("Not an NFT escrow")
        self.deposit_asset(sender=sender)

    @transactional
    def deposit_fractional_asset(self, *, sender: str) -> None:
        if not isinstance(self.asset, FractionalAsset):
            raise WrongAssetKindError("Not a fractional escrow")
        self.deposit_asset(sender=sender)

    # -- settlement ---------------------------------------------------------

    @transactional
    def finalize(self, *, sender: str) -> None:
        """
        Swap: asset to the buyer, payment to the seller.

        Raises:
            NoActiveEscrowError: If already finalized or cancelled
            OnlyBuyerError: If the sender is not the buyer
            EscrowIncompleteError: Unless both parties deposited
        """
        sender = self._sender(sender)
        self._require_active()
        if sender != self.buyer:
            raise OnlyBuyerError()
        if not (self.buyer_deposited and self.seller_deposited):
            raise EscrowIncompleteError()

        self._move_asset(self.address, self.buyer)
        self.chain.transfer(self.address, self.seller, self.price)
        self.state = EscrowState.FINALIZED

        self._emit("EscrowFinalized", buyer=self.buyer, seller=self.seller)
        logger.info(
            "Escrow %s finalized",
            self.address,
            extra={
                "extra": {
                    "escrow": self.address,
                    "buyer": self.buyer,
                    "seller": self.seller,
                    "price": self.price,
                }
            },
        )

    @transactional
    def cancel(self, *, sender: str) -> None:
        """
        Cancel and refund each party whatever it deposited.

        Raises:
            UnauthorizedError: If the sender is neither buyer nor seller
            NoActiveEscrowError: If already finalized or cancelled
        """
        sender = self._sender(sender)
        if sender not in (self.buyer, self.seller):
            raise UnauthorizedError("Only parties can cancel")
        self._require_active()

        if self.buyer_deposited:
            self.chain.transfer(self.address, self.buyer, self.price)
        if self.seller_deposited:
            self._move_asset(self.address, self.seller)
        self.state = EscrowState.CANCELLED

        self._emit(
            "EscrowCancelled",
            cancelled_by=sender,
            payment_refunded=self.buyer_deposited,
            asset_returned=self.seller_deposited,
        )
        logger.info("Escrow %s cancelled by %s", self.address, sender)

    # -- views --------------------------------------------------------------

    @view
    def get_status(self) -> EscrowStatus:
        return EscrowStatus(self.buyer_deposited, self.seller_deposited, self.state)

    @view
    def is_buyer_deposited(self) -> bool:
        return self.buyer_deposited

    @view
    def is_seller_deposited(self) -> bool:
        return self.seller_deposited

    @view
    def is_active(self) -> bool:
        return not self.state.terminal

    # -- helpers ------------------------------------------------------------

    def _require_active(self) -> None:
        if self.state.terminal:
            raise NoActiveEscrowError()

    def _advance(self) -> None:
        if self.buyer_deposited and self.seller_deposited:
            self.state = EscrowState.BOTH_DEPOSITED
        elif self.buyer_deposited:
            self.state = EscrowState.BUYER_DEPOSITED
        elif self.seller_deposited:
            self.state = EscrowState.SELLER_DEPOSITED

    def _move_asset(self, from_: str, to: str) -> None:
        if isinstance(self.asset, WholeAsset):
            self.property_nft.transfer_from(from_, to, self.asset.token_id, sender=self.address)
            return

        token = self.chain.contract_at(self.asset.token_address, FractionalToken)
        if from_ == self.address:
            token.transfer(to, self.asset.amount, sender=self.address)
        else:
            token.transfer_from(from_, to, self.asset.amount, sender=self.address)


def _validate_asset(chain: Chain, asset: EscrowAsset) -> EscrowAsset:
    if isinstance(asset, WholeAsset):
        if not isinstance(asset.token_id, int) or asset.token_id < 0:
            raise InvalidArgumentError("Invalid token id")
        return asset
    if isinstance(asset, FractionalAsset):
        if not isinstance(asset.amount, int) or asset.amount <= 0:
            raise InvalidArgumentError("Fraction amount must be greater than 0")
        token_address = to_nonzero_address(asset.token_address, "Invalid fraction token")
        try:
            chain.contract_at(token_address, FractionalToken)
        except ContractNotFoundError:
            raise InvalidArgumentError("Invalid fraction token")
        return FractionalAsset(token_address=token_address, amount=asset.amount)
    raise InvalidArgumentError("Unknown asset kind")


class EscrowFactory(Contract):
    """
    Deploys escrows and indexes them by party.

    Attributes:
        property_nft (PropertyNFT): Registry whole-asset escrows settle against
    """

    CONTRACT_NAME = "EscrowFactory"

    def __init__(self, chain: Chain, property_nft: PropertyNFT):
        if not isinstance(property_nft, PropertyNFT):
            raise InvalidArgumentError("Invalid PropertyNFT address")
        super().__init__(chain)

        self.property_nft = property_nft
        self._escrows: List[str] = []
        self._user_escrows: Dict[str, List[str]] = {}

    @transactional
    def create_escrow(
        self,
        buyer: str,
        seller: str,
        price: int,
        asset: EscrowAsset,
        *,
        sender: str,
    ) -> HybridEscrow:
        """
        Deploy a new escrow agreement.

        Args:
            buyer: Buyer address
            seller: Seller address
            price: Price in wei
            asset: WholeAsset or FractionalAsset
            sender: Caller (any account)

        Returns:
            The deployed HybridEscrow
        """
        sender = self._sender(sender)
        escrow = HybridEscrow(
            self.chain,
            buyer=buyer,
            seller=seller,
            price=price,
            asset=asset,
            property_nft=self.property_nft,
        )
        self._escrows.append(escrow.address)
        self._user_escrows.setdefault(escrow.buyer, []).append(escrow.address)
        self._user_escrows.setdefault(escrow.seller, []).append(escrow.address)

        self._emit(
            "EscrowCreated",
            escrow=escrow.address,
            buyer=escrow.buyer,
            seller=escrow.seller,
            price=price,
            kind=escrow.asset.kind.value,
            creator=sender,
        )
        logger.info(
            "Escrow %s created (%s, price %d)", escrow.address, escrow.asset.kind.name, price
        )
        return escrow

    def create_nft_escrow(
        self, buyer: str, seller: str, price: int, token_id: int, *, sender: str
    ) -> HybridEscrow:
        return self.create_escrow(buyer, seller, price, WholeAsset(token_id), sender=sender)

    def create_fractional_escrow(
        self,
        buyer: str,
        seller: str,
        price: int,
        token_address: str,
        amount: int,
        *,
        sender: str,
    ) -> HybridEscrow:
        return self.create_escrow(
            buyer, seller, price, FractionalAsset(token_address, amount), sender=sender
        )

    @view
    def get_escrow(self, address: str) -> HybridEscrow:
        address = to_address(address)
        if address not in self._escrows:
            raise ContractNotFoundError(f"Escrow {address} not created by this factory")
        return self.chain.contract_at(address, HybridEscrow)

    @view
    def get_user_escrows(self, user: str) -> List[str]:
        return list(self._user_escrows.get(to_address(user), []))

    @view
    def get_escrows(self) -> List[str]:
        return list(self._escrows)

    @view
    def get_total_escrows(self) -> int:
        return len(self._escrows)
