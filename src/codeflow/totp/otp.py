"""
HOTP/TOTP engine (RFC 4226 / RFC 6238).

HMAC-SHA1, six digits, thirty-second period, computed with pyotp. Secrets are
passed around as Base32 text and validated here, at the moment a code is
computed, so a bad secret surfaces as InvalidSecret rather than a pyotp error.

The functions are pure with respect to time: anything time-dependent takes
an explicit ``now`` (Unix seconds) and falls back to ``time.time()`` only when
it is omitted, so callers can drive them from a simulated clock.
"""

import time
import logging
import datetime

import pyotp
from pyotp.utils import strings_equal

from .. import config
from ..errors import InvalidEncoding, InvalidSecret
from . import base32

logger = logging.getLogger(__name__)

PERIOD = config.TOTP_PERIOD
DIGITS = config.TOTP_DIGITS
_MAX_COUNTER = 0xFFFFFFFFFFFFFFFF


def _secret_bytes(secret):
    try:
        key = base32.decode(secret)
    except InvalidEncoding as e:
        raise InvalidSecret("secret is not valid Base32") from e
    if not key:
        raise InvalidSecret("secret is empty")
    return key


def _canonical(secret):
    # Re-encode so lowercase, unpadded and partial-byte input all reach pyotp
    # as the same uppercase Base32 text
    return base32.encode(_secret_bytes(secret))


def _utc(now):
    if now is None:
        now = time.time()
    return datetime.datetime.fromtimestamp(now, tz=datetime.timezone.utc)


def hotp(secret, counter):
    """
    Compute an HOTP code.

    Args:
        secret (str): Base32 shared secret
        counter (int): Moving factor, 0 <= counter < 2**64

    Returns:
        str: Six-digit, zero-padded code

    Raises:
        InvalidSecret: If the secret does not decode as Base32
        ValueError: If the counter is outside the unsigned 64-bit range
    """
    if not 0 <= counter <= _MAX_COUNTER:
        raise ValueError(f"counter out of range: {counter}")

    return pyotp.HOTP(_canonical(secret), digits=DIGITS).at(counter)


def counter_at(now=None):
    """Return the TOTP counter floor(now / PERIOD)."""
    if now is None:
        now = time.time()
    return int(now // PERIOD)


def totp(secret, now=None):
    """
    Compute the TOTP code for the given (or current) time.

    Args:
        secret (str): Base32 shared secret
        now (float): Unix time in seconds, defaults to the current time

    Returns:
        str: Six-digit code
    """
    return pyotp.TOTP(_canonical(secret), digits=DIGITS, interval=PERIOD).at(_utc(now))


def time_remaining(now=None):
    """
    Seconds until the current TOTP code rotates.

    Returns:
        int: Value in the range [1, PERIOD]
    """
    if now is None:
        now = time.time()
    return PERIOD - (int(now) % PERIOD)


def code_at(secret, now=None):
    """
    Compute the code and its remaining lifetime for one instant.

    Args:
        secret (str): Base32 shared secret
        now (float): Unix time in seconds, defaults to the current time

    Returns:
        tuple: (code, seconds_remaining)
    """
    if now is None:
        now = time.time()
    return totp(secret, now), time_remaining(now)


def verify(secret, code, now=None, window=config.VERIFY_WINDOW):
    """
    Check a submitted code against the secret, tolerating clock skew.

    The code is accepted if it matches any counter within ``window`` steps of
    the current counter (counter-1, counter, counter+1 by default).

    Args:
        secret (str): Base32 shared secret
        code (str): Code entered by the user
        now (float): Unix time in seconds, defaults to the current time
        window (int): Number of steps accepted either side

    Returns:
        bool: True if the code matches

    Raises:
        InvalidSecret: If the secret does not decode as Base32
    """
    if now is None:
        now = time.time()
    generator = pyotp.TOTP(_canonical(secret), digits=DIGITS, interval=PERIOD)
    when = _utc(now)
    current = counter_at(now)
    submitted = (code or "").strip()
    matched = False
    for offset in range(-window, window + 1):
        # No steps exist before counter 0
        if current + offset < 0:
            continue
        if strings_equal(submitted, generator.at(when, offset)):
            matched = True
    if not matched:
        logger.debug("Verification code did not match any step in the window")
    return matched
