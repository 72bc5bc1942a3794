"""Pytest configuration and fixtures."""

from typing import Dict

import pytest

from propchain.chain import Chain
from propchain.contracts import (
    EscrowFactory,
    FractionTokenFactory,
    LastWillRegistry,
    Marketplace,
    PropertyNFT,
    Role,
    StampFeeCollector,
)

ACCOUNT_LABELS = (
    "admin",
    "surveyor",
    "notary",
    "ivsl",
    "buyer",
    "seller",
    "alice",
    "bob",
    "witness1",
    "witness2",
    "executor",
    "stranger",
)


@pytest.fixture
def chain() -> Chain:
    """Fresh ledger with default configuration."""
    return Chain()


@pytest.fixture
def accounts(chain: Chain) -> Dict[str, str]:
    """Funded named accounts."""
    return {label: chain.create_account(label) for label in ACCOUNT_LABELS}


@pytest.fixture
def property_nft(chain: Chain, accounts: Dict[str, str]) -> PropertyNFT:
    """PropertyNFT with the three certification roles granted."""
    nft = PropertyNFT(chain, admin=accounts["admin"])
    nft.grant_role(Role.SURVEYOR, accounts["surveyor"], sender=accounts["admin"])
    nft.grant_role(Role.NOTARY, accounts["notary"], sender=accounts["admin"])
    nft.grant_role(Role.IVSL, accounts["ivsl"], sender=accounts["admin"])
    return nft


@pytest.fixture
def pending_property(property_nft: PropertyNFT, accounts: Dict[str, str]) -> int:
    """Property minted to the seller, not yet signed."""
    return property_nft.mint_property(
        accounts["seller"], "ipfs://property1", "db://property1", sender=accounts["admin"]
    )


@pytest.fixture
def certified_property(
    property_nft: PropertyNFT, accounts: Dict[str, str], pending_property: int
) -> int:
    """Property minted to the seller and signed by all three roles."""
    for signer in ("surveyor", "notary", "ivsl"):
        property_nft.sign_property(pending_property, sender=accounts[signer])
    return pending_property


@pytest.fixture
def fraction_factory(chain: Chain, property_nft: PropertyNFT) -> FractionTokenFactory:
    return FractionTokenFactory(chain, property_nft)


@pytest.fixture
def escrow_factory(chain: Chain, property_nft: PropertyNFT) -> EscrowFactory:
    return EscrowFactory(chain, property_nft)


@pytest.fixture
def will_registry(
    chain: Chain, property_nft: PropertyNFT, accounts: Dict[str, str]
) -> LastWillRegistry:
    """Registry owned by the admin, with one authorized executor."""
    registry = LastWillRegistry(chain, property_nft, owner=accounts["admin"])
    registry.set_executor_authorization(accounts["executor"], True, sender=accounts["admin"])
    return registry


@pytest.fixture
def stamp_fee_collector(chain: Chain, accounts: Dict[str, str]) -> StampFeeCollector:
    return StampFeeCollector(chain, admin=accounts["admin"])


@pytest.fixture
def marketplace(chain: Chain) -> Marketplace:
    return Marketplace(chain)


@pytest.fixture
def fractionalized(
    property_nft: PropertyNFT,
    fraction_factory: FractionTokenFactory,
    accounts: Dict[str, str],
    certified_property: int,
):
    """Certified property fractionalized by the seller into 1,000,000 shares."""
    seller = accounts["seller"]
    property_nft.approve(fraction_factory.address, certified_property, sender=seller)
    fraction_factory.fractionalize(
        certified_property, "Property Token", "PTKN", 1_000_000, sender=seller
    )
    return fraction_factory.get_token_contract(certified_property)
