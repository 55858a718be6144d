"""Security utilities for bank token encryption and webhook authentication."""

import base64
import binascii
import hmac
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from bankfeed.core.exceptions import TokenVaultError

# AES-256-GCM parameters
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64


class TokenCipher:
    """AES-256-GCM cipher for provider access and refresh tokens.

    Ciphertexts are stored as base64(iv || ciphertext || tag).
    """

    def __init__(self, key_hex: str | None):
        """
        Build a cipher from a hex-encoded 32 byte key.

        Args:
            key_hex: 64 hexadecimal characters

        Raises:
            TokenVaultError: If the key is missing or malformed
        """
        if not key_hex or len(key_hex) != KEY_HEX_LENGTH:
            raise TokenVaultError("VAULT_001", details={"reason": "key must be 64 hex characters"})
        try:
            key = bytes.fromhex(key_hex)
        except ValueError:
            raise TokenVaultError("VAULT_001", details={"reason": "key is not hexadecimal"})
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token.

        Args:
            plaintext: Token to encrypt

        Returns:
            Base64 string containing iv, ciphertext and auth tag
        """
        iv = os.urandom(IV_LENGTH)
        # AESGCM appends the 16 byte tag to the ciphertext
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(iv + sealed).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a token produced by encrypt().

        Args:
            encrypted: Base64 string from encrypt()

        Returns:
            Original token

        Raises:
            TokenVaultError: If the input is malformed, tampered with or was
                encrypted under another key
        """
        try:
            raw = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError):
            raise TokenVaultError("VAULT_002", details={"reason": "malformed ciphertext"})
        if len(raw) < IV_LENGTH + TAG_LENGTH:
            raise TokenVaultError("VAULT_002", details={"reason": "ciphertext too short"})

        iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
        try:
            return self._aesgcm.decrypt(iv, sealed, None).decode("utf-8")
        except InvalidTag:
            raise TokenVaultError("VAULT_002", details={"reason": "authentication failed"})


def generate_token(nbytes: int = 32) -> str:
    """Random hex string used for OAuth state and pending connection ids."""
    return secrets.token_hex(nbytes)


def verify_webhook_secret(provided: str, expected: str) -> bool:
    """
    Compare a webhook path secret against the configured one.

    Args:
        provided: Secret taken from the request path
        expected: Configured secret

    Returns:
        True only when both secrets are identical
    """
    provided_bytes = provided.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(provided_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(provided_bytes, expected_bytes)
