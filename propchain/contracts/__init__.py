"""Ledger-hosted contracts of the property tokenization suite."""
from .base import Contract, transactional, view
from .property_nft import (
    PermissionTable,
    PoaLevel,
    PropertyNFT,
    Role,
    SignatureStatus,
    role_id,
)
from .fractional_token import FractionalToken
from .fraction_factory import FractionTokenFactory
from .escrow import (
    AssetKind,
    EscrowFactory,
    EscrowState,
    EscrowStatus,
    FractionalAsset,
    HybridEscrow,
    WholeAsset,
)
from .last_will import LastWillRegistry, Will, WitnessStatus
from .stamp_fee import StampFeeCollector, StampFeeReceipt
from .marketplace import Listing, ListingKind, Marketplace

__all__ = [
    "Contract",
    "transactional",
    "view",
    "PermissionTable",
    "PoaLevel",
    "PropertyNFT",
    "Role",
    "SignatureStatus",
    "role_id",
    "FractionalToken",
    "FractionTokenFactory",
    "AssetKind",
    "EscrowFactory",
    "EscrowState",
    "EscrowStatus",
    "FractionalAsset",
    "HybridEscrow",
    "WholeAsset",
    "LastWillRegistry",
    "Will",
    "WitnessStatus",
    "StampFeeCollector",
    "StampFeeReceipt",
    "Listing",
    "ListingKind",
    "Marketplace",
]
