"""Tests for calhub/security/token_crypto.py"""

import base64

import pytest
from cryptography.exceptions import InvalidTag

from calhub.security.token_crypto import KEY_BYTES, NONCE_BYTES, TokenCipher, generate_key


class TestGenerateKey:
    def test_key_decodes_to_32_bytes(self):
        assert len(base64.b64decode(generate_key())) == KEY_BYTES

    def test_keys_are_random(self):
        assert generate_key() != generate_key()


class TestTokenCipher:
    """Encryption at rest for token caches."""

    def test_round_trip(self):
        cipher = TokenCipher.from_key(generate_key())
        blob = cipher.encrypt(b'{"RefreshToken": {}}')

        assert cipher.enabled
        assert blob != b'{"RefreshToken": {}}'
        assert cipher.decrypt(blob) == b'{"RefreshToken": {}}'

    def test_fresh_nonce_per_message(self):
        cipher = TokenCipher.from_key(generate_key())
        first, second = cipher.encrypt(b"same"), cipher.encrypt(b"same")

        assert first != second
        assert first[:NONCE_BYTES] != second[:NONCE_BYTES]

    def test_wrong_key_is_detected(self):
        blob = TokenCipher.from_key(generate_key()).encrypt(b"secret")
        with pytest.raises(InvalidTag):
            TokenCipher.from_key(generate_key()).decrypt(blob)

    def test_tampering_is_detected(self):
        cipher = TokenCipher.from_key(generate_key())
        blob = bytearray(cipher.encrypt(b"secret"))
        blob[-1] ^= 0x01
        with pytest.raises(InvalidTag):
            cipher.decrypt(bytes(blob))

    @pytest.mark.parametrize(
        "key",
        [None, "", "not base64 at all!", base64.b64encode(b"too short").decode()],
    )
    def test_bad_keys_fall_back_to_plaintext(self, key):
        cipher = TokenCipher.from_key(key)

        assert not cipher.enabled
        assert cipher.encrypt(b"data") == b"data"
        assert cipher.decrypt(b"data") == b"data"

    def test_constructor_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="32 bytes"):
            TokenCipher(b"x" * 16)
