"""
Marketplace contract: fixed-price listings of properties and shares.

Listings do not take custody. The seller approves the marketplace, and
the asset moves straight from seller to buyer when a purchase settles.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, List, Optional

from ..addresses import to_address
from ..chain import Chain
from ..exceptions import (
    IncorrectPaymentError,
    InsufficientFundsError,
    InvalidArgumentError,
    ListingInactiveError,
    ListingNotFoundError,
    NotApprovedError,
    NotOwnerError,
    UnauthorizedError,
)
from ..logging import get_logger
from .base import Contract, transactional, view
from .fractional_token import FractionalToken
from .property_nft import PropertyNFT

logger = get_logger(__name__)

# Fractional prices are quoted per whole share (10**18 smallest units)
SHARE_UNIT = 10 ** FractionalToken.DECIMALS


class ListingKind(IntEnum):
    NFT = 0
    FRACTIONAL = 1


@dataclass
class Listing:
    """
    A marketplace listing.

    Attributes:
        listing_id: Listing identifier
        seller: Listing account
        listing_kind: NFT or FRACTIONAL
        nft_address: PropertyNFT the property lives in
        token_id: Property id
        price: Whole price (NFT) or price per share (FRACTIONAL), in wei
        token_address: FractionalToken address (FRACTIONAL only)
        amount: Shares still for sale (FRACTIONAL only)
        is_active: False once sold out or cancelled
    """

    listing_id: int
    seller: str
    listing_kind: ListingKind
    nft_address: str
    token_id: int
    price: int
    token_address: Optional[str] = None
    amount: int = 0
    is_active: bool = True


class Marketplace(Contract):
    """Fixed-price listings for whole properties and fractional shares."""

    CONTRACT_NAME = "Marketplace"

    def __init__(self, chain: Chain):
        super().__init__(chain)
        self.next_listing_id = 0
        self._listings: Dict[int, Listing] = {}

    @transactional
    def list_nft(self, nft_address: str, token_id: int, price: int, *, sender: str) -> int:
        """
        List a whole property.

        Args:
            nft_address: PropertyNFT address
            token_id: Property id
            price: Asking price in wei
            sender: Property owner (marketplace must be approved)

        Returns:
            The listing id
        """
        sender = self._sender(sender)
        nft = self.chain.contract_at(nft_address, PropertyNFT)
        if nft.owner_of(token_id) != sender:
            raise NotOwnerError()
        if price <= 0:
            raise InvalidArgumentError("Price must be greater than 0")
        if nft.get_approved(token_id) != self.address and not nft.is_approved_for_all(
            sender, self.address
        ):
            raise NotApprovedError("Marketplace not approved")

        return self._add_listing(
            Listing(
                listing_id=self.next_listing_id,
                seller=sender,
                listing_kind=ListingKind.NFT,
                nft_address=nft.address,
                token_id=token_id,
                price=price,
            )
        )

    @transactional
    def list_fractional_tokens(
        self,
        nft_address: str,
        property_id: int,
        token_address: str,
        amount: int,
        price_per_token: int,
        *,
        sender: str,
    ) -> int:
        """
        List fractional shares at a price per whole share.

        Returns:
            The listing id
        """
        sender = self._sender(sender)
        nft = self.chain.contract_at(nft_address, PropertyNFT)
        token = self.chain.contract_at(token_address, FractionalToken)
        if token.property_id != property_id:
            raise InvalidArgumentError("Token does not represent this property")
        if amount <= 0 or price_per_token <= 0:
            raise InvalidArgumentError("Amount and price must be greater than 0")
        if token.balance_of(sender) < amount:
            raise InsufficientFundsError("Insufficient token balance")
        if token.allowance(sender, self.address) < amount:
            raise NotApprovedError("Marketplace not approved")

        return self._add_listing(
            Listing(
                listing_id=self.next_listing_id,
                seller=sender,
                listing_kind=ListingKind.FRACTIONAL,
                nft_address=nft.address,
                token_id=property_id,
                price=price_per_token,
                token_address=token.address,
                amount=amount,
            )
        )

    @transactional
    def buy_nft(self, listing_id: int, *, value: int, sender: str) -> None:
        sender = self._sender(sender)
        listing = self._require_active(listing_id, ListingKind.NFT)
        if sender == listing.seller:
            raise InvalidArgumentError("Seller cannot buy own listing")
        if value != listing.price:
            raise IncorrectPaymentError("Wrong price")

        nft = self.chain.contract_at(listing.nft_address, PropertyNFT)
        nft.transfer_from(listing.seller, sender, listing.token_id, sender=self.address)
        self.chain.transfer(sender, listing.seller, value)
        listing.is_active = False

        self._emit("Sold", listing_id=listing_id, buyer=sender, amount=1, price=value)
        logger.info("Listing %d sold to %s for %d", listing_id, sender, value)

    @transactional
    def buy_fractional_tokens(self, listing_id: int, amount: int, *, value: int, sender: str) -> None:
        """
        Buy part or all of a fractional listing.

        The price is ``price_per_token * amount / 10**18``; the listing is
        deactivated once every share is sold.
        """
        sender = self._sender(sender)
        listing = self._require_active(listing_id, ListingKind.FRACTIONAL)
        if sender == listing.seller:
            raise InvalidArgumentError("Seller cannot buy own listing")
        if amount <= 0 or amount > listing.amount:
            raise InvalidArgumentError("Invalid amount")
        total_price = listing.price * amount // SHARE_UNIT
        if total_price == 0:
            raise InvalidArgumentError("Invalid amount")
        if value != total_price:
            raise IncorrectPaymentError("Wrong price")

        token = self.chain.contract_at(listing.token_address, FractionalToken)
        token.transfer_from(listing.seller, sender, amount, sender=self.address)
        self.chain.transfer(sender, listing.seller, value)
        listing.amount -= amount
        if listing.amount == 0:
            listing.is_active = False

        self._emit("Sold", listing_id=listing_id, buyer=sender, amount=amount, price=value)
        logger.info("Listing %d: %d shares sold to %s for %d", listing_id, amount, sender, value)

    @transactional
    def cancel_listing(self, listing_id: int, *, sender: str) -> None:
        sender = self._sender(sender)
        listing = self._require_listing(listing_id)
        if sender != listing.seller:
            raise UnauthorizedError("Only seller")
        if not listing.is_active:
            raise ListingInactiveError()

        listing.is_active = False
        self._emit("Cancelled", listing_id=listing_id)

    @view
    def get_listing(self, listing_id: int) -> Listing:
        return replace(self._require_listing(listing_id))

    @view
    def get_active_listings(self, seller: Optional[str] = None) -> List[Listing]:
        seller = to_address(seller) if seller else None
        return [
            replace(listing) for listing in self._listings.values()
            if listing.is_active and (seller is None or listing.seller == seller)
        ]

    def _add_listing(self, listing: Listing) -> int:
        self._listings[listing.listing_id] = listing
        self.next_listing_id += 1
        self._emit(
            "Listed",
            listing_id=listing.listing_id,
            seller=listing.seller,
            kind=int(listing.listing_kind),
            price=listing.price,
            amount=listing.amount,
        )
        logger.info("Listing %d created by %s", listing.listing_id, listing.seller)
        return listing.listing_id

    def _require_listing(self, listing_id: int) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(f"Listing {listing_id} does not exist")
        return listing

    def _require_active(self, listing_id: int, kind: ListingKind) -> Listing:
        listing = self._require_listing(listing_id)
        if not listing.is_active:
            raise ListingInactiveError()
        if listing.listing_kind != kind:
            raise InvalidArgumentError("Wrong listing type")
        return listing
