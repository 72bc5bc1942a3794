"""Configuration management for propchain."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from web3 import Web3

from .exceptions import ConfigurationError

# Dev-node defaults (Hardhat / Anvil)
DEFAULT_CHAIN_ID = 31337
DEFAULT_ACCOUNT_BALANCE_ETH = 10_000
DEFAULT_GENESIS_TIMESTAMP = 1_700_000_000


@dataclass
class ChainConfig:
    """In-memory ledger configuration."""

    chain_id: int = DEFAULT_CHAIN_ID
    default_account_balance: int = field(
        default_factory=lambda: Web3.to_wei(DEFAULT_ACCOUNT_BALANCE_ETH, "ether")
    )
    genesis_timestamp: int = DEFAULT_GENESIS_TIMESTAMP

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ConfigurationError("Chain id must be greater than 0")
        if self.default_account_balance < 0:
            raise ConfigurationError("Default account balance cannot be negative")


@dataclass
class DeploymentConfig:
    """Deployment manifest configuration."""

    output_path: Path = field(default_factory=lambda: Path("dep.json"))
    encrypt: bool = False
    encryption_key: Optional[str] = None
    network: str = "localhost"

    def require_key(self) -> str:
        """Return the encryption key, failing if encryption was requested without one."""
        if not self.encryption_key:
            raise ConfigurationError(
                "ENCRYPTION_KEY must be set to encrypt the deployment manifest"
            )
        return self.encryption_key


@dataclass
class PropchainConfig:
    """Main configuration for propchain."""

    chain: ChainConfig = field(default_factory=ChainConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "PropchainConfig":
        """Create config from environment variables."""
        try:
            chain = ChainConfig(
                chain_id=int(os.getenv("PROPCHAIN_CHAIN_ID", str(DEFAULT_CHAIN_ID))),
                default_account_balance=Web3.to_wei(
                    int(
                        os.getenv(
                            "PROPCHAIN_ACCOUNT_BALANCE_ETH",
                            str(DEFAULT_ACCOUNT_BALANCE_ETH),
                        )
                    ),
                    "ether",
                ),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid chain configuration: {e}") from e

        deployment = DeploymentConfig(
            output_path=Path(os.getenv("DEPLOYMENT_FILE", "dep.json")),
            encrypt=os.getenv("ENCRYPT_DEPLOYMENT", "false").lower() == "true",
            encryption_key=os.getenv("ENCRYPTION_KEY") or None,
            network=os.getenv("NETWORK", "localhost"),
        )

        return cls(
            chain=chain,
            deployment=deployment,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
