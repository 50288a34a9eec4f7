"""
Vault Cryptography Module for CodeFlow

Provides the password-derived envelope encryption used for the account vault:
- Salt generation from a cryptographically secure random source
- PBKDF2-HMAC-SHA256 key derivation (100,000 iterations, 256-bit key)
- AES-256-GCM authenticated encryption with a fresh 12-byte IV per call

Envelope text format: ``hex(IV) + ":" + hex(ciphertext || tag)``.

A failed tag check is reported as AuthenticationFailed whether the password
was wrong or the data was tampered with; the two cases are not distinguished.
"""

import os
import logging
import binascii

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .. import config
from ..errors import AuthenticationFailed, CorruptData, MalformedEnvelope

logger = logging.getLogger(__name__)


def generate_salt():
    """
    Generate a random salt for key derivation.

    Returns:
        tuple: (salt bytes, salt as lowercase hex text)
    """
    salt = os.urandom(config.SALT_BYTES)
    return salt, salt.hex()


def derive_key(password, salt, iterations=config.PBKDF2_ITERATIONS):
    """
    Derive an AES-256-GCM key from a password using PBKDF2-HMAC-SHA256.

    Deterministic for a given password and salt. The salt is created once per
    user and persisted; it is never regenerated on login.

    Args:
        password (str or bytes): User password
        salt (bytes or str): Salt bytes, or the salt as hex text
        iterations (int): PBKDF2 iteration count

    Returns:
        bytes: 32-byte key
    """
    if isinstance(password, str):
        password = password.encode('utf-8')
    if isinstance(salt, str):
        salt = bytes.fromhex(salt)

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=config.KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


def encrypt(plaintext, key):
    """
    Encrypt text with AES-256-GCM under a fresh random IV.

    Args:
        plaintext (str): Text to encrypt (UTF-8 encoded before encryption)
        key (bytes): 32-byte key from derive_key()

    Returns:
        str: Envelope text ``hex(iv):hex(ciphertext||tag)``
    """
    iv = os.urandom(config.IV_BYTES)
    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode('utf-8'), None)
    return f"{iv.hex()}{config.ENVELOPE_DELIMITER}{ciphertext.hex()}"


def split_envelope(envelope):
    """
    Split envelope text into its IV and ciphertext bytes.

    Raises:
        MalformedEnvelope: If the delimiter is missing, either field is empty,
            or either field is not valid hex
    """
    if not isinstance(envelope, str):
        raise MalformedEnvelope("envelope must be text")

    iv_hex, delimiter, ciphertext_hex = envelope.strip().partition(config.ENVELOPE_DELIMITER)
    if not delimiter or not iv_hex or not ciphertext_hex:
        raise MalformedEnvelope("Invalid encrypted data format")

    try:
        iv = binascii.unhexlify(iv_hex)
        ciphertext = binascii.unhexlify(ciphertext_hex)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelope("Encrypted data is not valid hex") from e

    if len(iv) != config.IV_BYTES:
        raise MalformedEnvelope(f"IV must be {config.IV_BYTES} bytes, got {len(iv)}")
    return iv, ciphertext


def decrypt(envelope, key):
    """
    Decrypt and verify envelope text.

    Args:
        envelope (str): Envelope text produced by encrypt()
        key (bytes): 32-byte key from derive_key()

    Returns:
        str: The decrypted text

    Raises:
        MalformedEnvelope: If the envelope text is not well formed
        AuthenticationFailed: If the tag does not verify (wrong password or
            corrupted data)
        CorruptData: If the decrypted bytes are not UTF-8 text
    """
    iv, ciphertext = split_envelope(envelope)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as e:
        logger.debug("AES-GCM tag verification failed")
        raise AuthenticationFailed("Incorrect password or corrupted data") from e

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError as e:
        raise CorruptData("Decrypted data is not UTF-8 text") from e
