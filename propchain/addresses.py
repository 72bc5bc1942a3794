"""Address helpers shared by the ledger and the contracts."""

from typing import Any

from web3 import Web3

from .exceptions import InvalidArgumentError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_address(value: Any, reason: str = "Invalid address") -> str:
    """
    Normalize an address to its EIP-55 checksum form.

    Args:
        value: Hex address string (any case)
        reason: Revert reason used when the value is not an address

    Returns:
        Checksummed address

    Raises:
        InvalidArgumentError: If the value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidArgumentError(reason)
    return Web3.to_checksum_address(value)


def to_nonzero_address(value: Any, reason: str = "Invalid address") -> str:
    """Same as to_address, but also rejects the zero address."""
    address = to_address(value, reason)
    if address == ZERO_ADDRESS:
        raise InvalidArgumentError(reason)
    return address


def derive_address(seed: str) -> str:
    """Derive a deterministic address from the last 20 bytes of keccak(seed)."""
    digest = Web3.keccak(text=seed)
    return Web3.to_checksum_address(Web3.to_hex(digest[-20:]))
