"""
Encryption of deployment manifests.

Manifests are encrypted with AES-256-CBC and PKCS#7 padding under a
fresh random 16-byte IV. The envelope is a JSON object of two hex
strings, ``{"iv": ..., "data": ...}``.
"""

import os
from typing import Dict

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import ConfigurationError, DeploymentError

KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE_BITS = 128


def _parse_key(key_hex: str) -> bytes:
    try:
        key = bytes.fromhex(key_hex)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Encryption key must be hex encoded") from e
    if len(key) != KEY_SIZE:
        raise ConfigurationError(
            f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}"
        )
    return key


def is_envelope(payload: object) -> bool:
    """True if ``payload`` looks like an encrypted manifest envelope."""
    return isinstance(payload, dict) and set(payload) == {"iv", "data"}


def encrypt_payload(data: str, key_hex: str) -> Dict[str, str]:
    """
    Encrypt a UTF-8 string.

    Args:
        data: Plaintext (usually a JSON document)
        key_hex: 32-byte key as 64 hex characters

    Returns:
        Envelope with hex-encoded IV and ciphertext

    Raises:
        ConfigurationError: If the key is malformed
    """
    key = _parse_key(key_hex)
    iv = os.urandom(IV_SIZE)

    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(data.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return {"iv": iv.hex(), "data": ciphertext.hex()}


def decrypt_payload(envelope: Dict[str, str], key_hex: str) -> str:
    """
    Decrypt an envelope produced by encrypt_payload.

    Args:
        envelope: ``{"iv": hex, "data": hex}``
        key_hex: 32-byte key as 64 hex characters

    Returns:
        The plaintext string

    Raises:
        ConfigurationError: If the key is malformed
        DeploymentError: If the envelope is malformed, or the key is wrong
            or the ciphertext was tampered with
    """
    key = _parse_key(key_hex)
    if not is_envelope(envelope):
        raise DeploymentError("Not an encrypted manifest envelope")

    try:
        iv = bytes.fromhex(envelope["iv"])
        ciphertext = bytes.fromhex(envelope["data"])
    except (TypeError, ValueError) as e:
        raise DeploymentError("Envelope fields must be hex encoded") from e
    if len(iv) != IV_SIZE or not ciphertext or len(ciphertext) % IV_SIZE:
        raise DeploymentError("Malformed encrypted manifest")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except ValueError as e:
        # Bad padding or non-UTF-8 output; UnicodeDecodeError is a ValueError
        raise DeploymentError("Could not decrypt manifest (wrong key or corrupted data)") from e
