"""Deployment manifests and their encryption."""

from .crypto import decrypt_payload, encrypt_payload, is_envelope
from .manifest import (
    DeploymentManifest,
    get_contract_address,
    list_deployed_contracts,
    load_manifest,
    save_manifest,
    validate_manifest,
)

__all__ = [
    "DeploymentManifest",
    "decrypt_payload",
    "encrypt_payload",
    "get_contract_address",
    "is_envelope",
    "list_deployed_contracts",
    "load_manifest",
    "save_manifest",
    "validate_manifest",
]
