"""Unit tests for token encryption and webhook secret checks."""

import base64

import pytest

from bankfeed.core.exceptions import TokenVaultError
from bankfeed.core.security import TokenCipher, generate_token, verify_webhook_secret

KEY = "0f" * 32


class TestTokenCipher:
    def test_encrypt_decrypt(self):
        cipher = TokenCipher(KEY)
        encrypted = cipher.encrypt("access-token-value")

        assert encrypted != "access-token-value"
        assert cipher.decrypt(encrypted) == "access-token-value"

    def test_random_iv_per_encryption(self):
        cipher = TokenCipher(KEY)
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_layout_is_iv_ciphertext_tag(self):
        raw = base64.b64decode(TokenCipher(KEY).encrypt("abcd"))
        # 12 byte IV + 4 byte ciphertext + 16 byte tag
        assert len(raw) == 12 + 4 + 16

    @pytest.mark.parametrize("key", [None, "", "abc", "zz" * 32, "00" * 31])
    def test_invalid_key(self, key):
        with pytest.raises(TokenVaultError) as exc_info:
            TokenCipher(key)
        assert exc_info.value.error_code == "VAULT_001"

    def test_wrong_key_fails(self):
        encrypted = TokenCipher(KEY).encrypt("secret")
        with pytest.raises(TokenVaultError) as exc_info:
            TokenCipher("1e" * 32).decrypt(encrypted)
        assert exc_info.value.error_code == "VAULT_002"

    def test_tampered_ciphertext_fails(self):
        cipher = TokenCipher(KEY)
        raw = bytearray(base64.b64decode(cipher.encrypt("secret")))
        raw[-1] ^= 0x01
        with pytest.raises(TokenVaultError):
            cipher.decrypt(base64.b64encode(bytes(raw)).decode())

    @pytest.mark.parametrize("value", ["not base64!!", base64.b64encode(b"short").decode()])
    def test_malformed_ciphertext_fails(self, value):
        with pytest.raises(TokenVaultError) as exc_info:
            TokenCipher(KEY).decrypt(value)
        assert exc_info.value.error_code == "VAULT_002"


class TestWebhookSecret:
    def test_matching_secret(self):
        assert verify_webhook_secret("s3cret", "s3cret") is True

    def test_mismatch_same_length(self):
        assert verify_webhook_secret("s3cres", "s3cret") is False

    def test_mismatch_different_length(self):
        assert verify_webhook_secret("s3cret-longer", "s3cret") is False


def test_generate_token_is_hex_and_unique():
    first, second = generate_token(16), generate_token(16)
    assert len(first) == 32
    int(first, 16)
    assert first != second
