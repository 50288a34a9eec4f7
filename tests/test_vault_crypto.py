import hashlib

import pytest

from codeflow.errors import AuthenticationFailed, MalformedEnvelope
from codeflow.security import vault_crypto

from conftest import PASSWORD


def test_generate_salt_returns_bytes_and_hex():
    salt, salt_hex = vault_crypto.generate_salt()
    assert len(salt) == 16
    assert salt_hex == salt.hex()
    assert len(salt_hex) == 32
    assert vault_crypto.generate_salt()[0] != salt


def test_derive_key_matches_pbkdf2_sha256(salt, key):
    expected = hashlib.pbkdf2_hmac("sha256", PASSWORD.encode(), salt, 100000, dklen=32)
    assert key == expected
    assert vault_crypto.derive_key(PASSWORD, salt.hex()) == key


def test_derive_key_depends_on_password_and_salt(salt, key):
    assert vault_crypto.derive_key("other password", salt, iterations=1000) != \
        vault_crypto.derive_key(PASSWORD, salt, iterations=1000)
    assert vault_crypto.derive_key(PASSWORD, bytes(16), iterations=1000) != \
        vault_crypto.derive_key(PASSWORD, salt, iterations=1000)


def test_round_trip(key):
    for message in ("", "hello", '[{"id": "1", "secret": "JBSWY3DP"}]', "ünïcødé ✓"):
        assert vault_crypto.decrypt(vault_crypto.encrypt(message, key), key) == message


def test_envelope_format(key):
    envelope = vault_crypto.encrypt("abc", key)
    iv_hex, ciphertext_hex = envelope.split(":")
    assert len(iv_hex) == 24
    # 3 bytes of plaintext + 16-byte tag
    assert len(bytes.fromhex(ciphertext_hex)) == 19


def test_fresh_iv_per_encryption(key):
    first = vault_crypto.encrypt("same plaintext", key)
    second = vault_crypto.encrypt("same plaintext", key)
    assert first != second
    assert first.split(":")[0] != second.split(":")[0]


def test_wrong_password_fails_authentication(salt, key):
    envelope = vault_crypto.encrypt("secret data", key)
    wrong_key = vault_crypto.derive_key("wrong password", salt)
    with pytest.raises(AuthenticationFailed):
        vault_crypto.decrypt(envelope, wrong_key)


def test_tampered_ciphertext_fails_authentication(key):
    envelope = vault_crypto.encrypt("secret data", key)
    iv_hex, ciphertext_hex = envelope.split(":")
    flipped = bytearray.fromhex(ciphertext_hex)
    flipped[0] ^= 0x01
    with pytest.raises(AuthenticationFailed):
        vault_crypto.decrypt(f"{iv_hex}:{flipped.hex()}", key)

    other_iv = bytearray.fromhex(iv_hex)
    other_iv[-1] ^= 0x80
    with pytest.raises(AuthenticationFailed):
        vault_crypto.decrypt(f"{other_iv.hex()}:{ciphertext_hex}", key)


@pytest.mark.parametrize("envelope", [
    "",
    "no delimiter here",
    ":abcd",
    "00112233445566778899aabb:",
    "zz112233445566778899aabb:abcd",
    "00112233445566778899aabb:xyz",
    "00112233445566778899aabb:abc",
    "0011:abcdef",
])
def test_malformed_envelopes(key, envelope):
    with pytest.raises(MalformedEnvelope):
        vault_crypto.decrypt(envelope, key)


def test_short_ciphertext_fails_authentication(key):
    with pytest.raises(AuthenticationFailed):
        vault_crypto.decrypt("00112233445566778899aabb:abcd", key)
