"""
TOTP-related modules for CodeFlow: Base32 codec, HOTP/TOTP engine,
refresh ticker and migration payload decoder.
"""

from . import base32
from .otp import hotp, totp, time_remaining, code_at, verify
from .ticker import TotpTicker
from .migration import decode_migration_uri, parse_otpauth_uri, parse_scanned_text

__all__ = [
    'base32',
    'hotp',
    'totp',
    'time_remaining',
    'code_at',
    'verify',
    'TotpTicker',
    'decode_migration_uri',
    'parse_otpauth_uri',
    'parse_scanned_text',
]
