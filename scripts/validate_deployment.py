#!/usr/bin/env python3
"""Validate that a deployment manifest is readable and well-formed"""

import os
import sys
from pathlib import Path

# Add parent directory to path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from propchain.deployments import (  # noqa: E402
    load_manifest,
    list_deployed_contracts,
    validate_manifest,
)
from propchain.exceptions import PropchainError  # noqa: E402


def validate(path):
    """Validate every contract address recorded in the manifest"""
    print(f"Validating manifest {path}...")

    try:
        manifest = load_manifest(path, encryption_key=os.getenv("ENCRYPTION_KEY"))
    except PropchainError as e:
        print(f"  ❌ {e}")
        return 1

    contracts = list_deployed_contracts(manifest)
    print(f"\nFound {len(contracts)} deployed contracts on {manifest.network}:")

    status = validate_manifest(manifest)
    for name in contracts:
        if status[name]:
            print(f"  ✅ {name}: {manifest.contracts[name]}")
        else:
            print(f"  ❌ {name}: invalid address {manifest.contracts[name]!r}")

    print()
    if contracts and all(status.values()):
        print("✅ All contracts valid!")
        return 0
    else:
        print("❌ Some contracts failed validation")
        return 1


if __name__ == "__main__":
    sys.exit(validate(sys.argv[1] if len(sys.argv) > 1 else os.getenv("DEPLOYMENT_FILE", "dep.json")))
