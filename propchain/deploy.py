"""
Deploy the full contract suite onto a fresh ledger.

Deploys PropertyNFT, grants the certification roles, mints a sample
property to the seller, deploys the fractionalization, escrow, will,
stamp-fee and marketplace contracts plus a sample 1 ETH escrow for the
minted property, and writes the deployment manifest.

Usage:
    propchain-deploy --output dep.json --encrypt
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from web3 import Web3

from .chain import Chain
from .config import PropchainConfig
from .contracts import (
    EscrowFactory,
    FractionTokenFactory,
    HybridEscrow,
    LastWillRegistry,
    Marketplace,
    PropertyNFT,
    Role,
    StampFeeCollector,
)
from .deployments import DeploymentManifest, save_manifest
from .exceptions import ConfigurationError, PropchainError
from .logging import get_logger, setup_logging

logger = get_logger(__name__)

ACCOUNT_LABELS = ("deployer", "surveyor", "notary", "ivsl", "buyer", "seller")
SAMPLE_IPFS_HASH = "ipfs://property1"
SAMPLE_DB_HASH = "db://property1"
SAMPLE_ESCROW_PRICE = Web3.to_wei(1, "ether")


@dataclass
class DeployedSuite:
    """
    A deployed contract suite and the accounts it was deployed with.

    Attributes:
        chain: Ledger the suite lives on
        accounts: Label -> address of the named accounts
        property_nft: Property registry
        fraction_factory: Fractionalization factory
        escrow_factory: Escrow factory
        will_registry: Last-will registry
        stamp_fee_collector: Stamp-fee collector
        marketplace: Marketplace
        sample_token_id: Property minted to the seller
        sample_escrow: 1 ETH escrow of the sample property
        network: Network name recorded in the manifest
    """

    chain: Chain
    accounts: Dict[str, str]
    property_nft: PropertyNFT
    fraction_factory: FractionTokenFactory
    escrow_factory: EscrowFactory
    will_registry: LastWillRegistry
    stamp_fee_collector: StampFeeCollector
    marketplace: Marketplace
    sample_token_id: int
    sample_escrow: HybridEscrow
    network: str = "localhost"
    roles: Dict[str, List[str]] = field(default_factory=dict)

    def manifest(self) -> DeploymentManifest:
        deployed = (
            self.property_nft,
            self.fraction_factory,
            self.escrow_factory,
            self.will_registry,
            self.stamp_fee_collector,
            self.marketplace,
            self.sample_escrow,
        )
        contracts = {}
        for contract in deployed:
            info = contract.describe()
            contracts[info["contract_name"]] = info["address"]
        return DeploymentManifest(
            network=self.network,
            chain_id=self.chain.chain_id,
            deployer=self.accounts["deployer"],
            contracts=contracts,
            roles={role: list(accounts) for role, accounts in self.roles.items()},
            accounts=dict(self.accounts),
        )


def deploy_suite(
    chain: Optional[Chain] = None,
    config: Optional[PropchainConfig] = None,
) -> DeployedSuite:
    """
    Deploy every contract of the suite.

    Args:
        chain: Ledger to deploy on (a fresh one is created if omitted)
        config: Configuration (defaults are used if omitted)

    Returns:
        The deployed suite
    """
    config = config or PropchainConfig()
    chain = chain or Chain(config.chain)
    accounts = {label: chain.create_account(label) for label in ACCOUNT_LABELS}
    deployer = accounts["deployer"]

    logger.info("Deploying contracts with account: %s", deployer)

    property_nft = PropertyNFT(chain, admin=deployer)
    logger.info("PropertyNFT deployed at: %s", property_nft.address)

    roles: Dict[str, List[str]] = {}
    for role, label in ((Role.SURVEYOR, "surveyor"), (Role.NOTARY, "notary"), (Role.IVSL, "ivsl")):
        property_nft.grant_role(role, accounts[label], sender=deployer)
        roles[role.value] = [accounts[label]]
    logger.info("Roles granted")

    token_id = property_nft.mint_property(
        accounts["seller"], SAMPLE_IPFS_HASH, SAMPLE_DB_HASH, sender=deployer
    )
    logger.info("Property NFT %d minted to seller", token_id)

    fraction_factory = FractionTokenFactory(chain, property_nft)
    logger.info("FractionTokenFactory deployed at: %s", fraction_factory.address)

    escrow_factory = EscrowFactory(chain, property_nft)
    logger.info("EscrowFactory deployed at: %s", escrow_factory.address)

    will_registry = LastWillRegistry(chain, property_nft, owner=deployer)
    will_registry.set_executor_authorization(deployer, True, sender=deployer)
    logger.info("LastWillRegistry deployed at: %s", will_registry.address)

    stamp_fee_collector = StampFeeCollector(chain, admin=deployer)
    logger.info("StampFeeCollector deployed at: %s", stamp_fee_collector.address)

    marketplace = Marketplace(chain)
    logger.info("Marketplace deployed at: %s", marketplace.address)

    sample_escrow = escrow_factory.create_nft_escrow(
        accounts["buyer"], accounts["seller"], SAMPLE_ESCROW_PRICE, token_id, sender=deployer
    )
    logger.info("HybridEscrow deployed at: %s", sample_escrow.address)

    logger.info("Deployment complete!")
    return DeployedSuite(
        chain=chain,
        accounts=accounts,
        property_nft=property_nft,
        fraction_factory=fraction_factory,
        escrow_factory=escrow_factory,
        will_registry=will_registry,
        stamp_fee_collector=stamp_fee_collector,
        marketplace=marketplace,
        sample_token_id=token_id,
        sample_escrow=sample_escrow,
        network=config.deployment.network,
        roles=roles,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Deploy the property tokenization contract suite"
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Manifest output path (default: DEPLOYMENT_FILE or dep.json)",
    )
    parser.add_argument(
        "--encrypt",
        action="store_true",
        help="Encrypt the manifest with ENCRYPTION_KEY",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = PropchainConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    if args.output is not None:
        config.deployment.output_path = args.output
    if args.encrypt:
        config.deployment.encrypt = True
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_level, config.log_format)

    try:
        key = config.deployment.require_key() if config.deployment.encrypt else None
        suite = deploy_suite(config=config)
        save_manifest(suite.manifest(), config.deployment.output_path, encryption_key=key)
    except PropchainError as e:
        logger.error("Deployment failed: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
