"""
Deployment manifests.

A manifest records where each contract of a suite was deployed, which
accounts were granted roles, and on which network. Manifests are plain
JSON files (``dep.json`` by default) and may be stored encrypted.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from ..exceptions import DeploymentError
from ..logging import get_logger
from .crypto import decrypt_payload, encrypt_payload, is_envelope

logger = get_logger(__name__)

MANIFEST_VERSION = 1


@dataclass
class DeploymentManifest:
    """
    Addresses of a deployed contract suite.

    Attributes:
        network: Network name (e.g. "localhost")
        chain_id: Chain identifier
        deployer: Account that deployed the suite
        contracts: Contract name -> address
        roles: Role name -> accounts holding it
        accounts: Label -> address of the named accounts used
    """

    network: str
    chain_id: int
    deployer: str
    contracts: Dict[str, str] = field(default_factory=dict)
    roles: Dict[str, List[str]] = field(default_factory=dict)
    accounts: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "network": self.network,
            "chainId": self.chain_id,
            "deployer": self.deployer,
            "contracts": dict(self.contracts),
            "roles": {role: list(accounts) for role, accounts in self.roles.items()},
            "accounts": dict(self.accounts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentManifest":
        """
        Build a manifest from its dictionary form.

        Raises:
            DeploymentError: If required keys are missing
        """
        try:
            return cls(
                network=data["network"],
                chain_id=int(data["chainId"]),
                deployer=data["deployer"],
                contracts=dict(data.get("contracts", {})),
                roles={k: list(v) for k, v in data.get("roles", {}).items()},
                accounts=dict(data.get("accounts", {})),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeploymentError(f"Invalid deployment manifest: {e}") from e


def save_manifest(
    manifest: DeploymentManifest,
    path: Union[str, Path],
    encryption_key: Optional[str] = None,
) -> Path:
    """
    Write a manifest to disk.

    Args:
        manifest: Manifest to write
        path: Output file
        encryption_key: If given, store the manifest encrypted under this key

    Returns:
        The path written
    """
    path = Path(path)
    document = json.dumps(manifest.to_dict(), indent=2)
    if encryption_key:
        document = json.dumps(encrypt_payload(document, encryption_key))

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document, encoding="utf-8")
    except OSError as e:
        raise DeploymentError(f"Could not write manifest {path}: {e}") from e

    logger.info(
        "Wrote %s deployment manifest to %s",
        "encrypted" if encryption_key else "plain",
        path,
    )
    return path


def load_manifest(
    path: Union[str, Path],
    encryption_key: Optional[str] = None,
) -> DeploymentManifest:
    """
    Load a manifest from disk, decrypting it if needed.

    Args:
        path: Manifest file
        encryption_key: Key for encrypted manifests

    Returns:
        The manifest

    Raises:
        DeploymentError: If the file is missing or unreadable, or is
            encrypted and no key was given
    """
    path = Path(path)
    if not path.exists():
        raise DeploymentError(f"Manifest file not found: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise DeploymentError(f"Could not read manifest {path}: {e}") from e

    if is_envelope(payload):
        if not encryption_key:
            raise DeploymentError(f"Manifest {path} is encrypted; an encryption key is required")
        try:
            payload = json.loads(decrypt_payload(payload, encryption_key))
        except json.JSONDecodeError as e:
            raise DeploymentError(f"Decrypted manifest {path} is not JSON") from e

    return DeploymentManifest.from_dict(payload)


def get_contract_address(manifest: DeploymentManifest, contract_name: str) -> str:
    """
    Look up a deployed contract's address.

    Raises:
        DeploymentError: If the contract is not in the manifest
    """
    if contract_name not in manifest.contracts:
        available = ", ".join(sorted(manifest.contracts)) or "none"
        raise DeploymentError(
            f"Contract {contract_name} not in manifest. Deployed contracts: {available}"
        )
    return manifest.contracts[contract_name]


def list_deployed_contracts(manifest: DeploymentManifest) -> List[str]:
    return sorted(manifest.contracts)


def validate_manifest(manifest: DeploymentManifest) -> Dict[str, bool]:
    """
    Check that every recorded address is a valid checksummed address.

    Returns:
        Dictionary mapping contract names to validity
    """
    return {
        name: Web3.is_checksum_address(address)
        for name, address in manifest.contracts.items()
    }
