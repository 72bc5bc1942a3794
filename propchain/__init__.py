"""
Propchain Property Ledger

Real-estate tokenization on an in-memory ledger: property certification,
fractional ownership, hybrid escrow, last-will succession, stamp fees and
a fixed-price marketplace, plus deployment manifests for the suite.
"""

__version__ = "1.0.0"
__author__ = "Propchain"

from .chain import Chain, Event
from .config import ChainConfig, DeploymentConfig, PropchainConfig
from .contracts import (
    EscrowFactory,
    FractionalAsset,
    FractionalToken,
    FractionTokenFactory,
    HybridEscrow,
    LastWillRegistry,
    Marketplace,
    PropertyNFT,
    Role,
    StampFeeCollector,
    WholeAsset,
)
from .deploy import DeployedSuite, deploy_suite

__all__ = [
    'Chain',
    'Event',
    'ChainConfig',
    'DeploymentConfig',
    'PropchainConfig',
    'EscrowFactory',
    'FractionalAsset',
    'FractionalToken',
    'FractionTokenFactory',
    'HybridEscrow',
    'LastWillRegistry',
    'Marketplace',
    'PropertyNFT',
    'Role',
    'StampFeeCollector',
    'WholeAsset',
    'DeployedSuite',
    'deploy_suite',
]
