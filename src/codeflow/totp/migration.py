"""
Migration payload decoder.

Recognises the two URI forms produced by authenticator QR codes:

- Bulk transfer export: ``otpauth-migration://offline?data=<Base64>``, where
  the Base64 data is a length-delimited binary message holding repeated OTP
  parameter blocks. Only this one fixed message shape is ever decoded, so it
  is read with a small tag/wire-type/value field parser.
- Single account: ``otpauth://totp/<label>?secret=<Base32>&issuer=<text>``.

Decoded entries are projected into Account fields with Base32 secrets.
"""

import base64
import binascii
import logging
import urllib.parse
from collections import namedtuple

from ..errors import CorruptData, EmptyMigrationPayload, MissingSecret, UnrecognizedFormat
from ..models import MigrationEntry, MigrationPayload
from . import base32

logger = logging.getLogger(__name__)

MIGRATION_PREFIX = "otpauth-migration://"
TOTP_PREFIX = "otpauth://totp/"

# Wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

# MigrationPayload fields
PAYLOAD_OTP_PARAMETERS = 1
PAYLOAD_VERSION = 2
PAYLOAD_BATCH_SIZE = 3
PAYLOAD_BATCH_INDEX = 4
PAYLOAD_BATCH_ID = 5

# OtpParameters fields
PARAM_SECRET = 1
PARAM_NAME = 2
PARAM_ISSUER = 3
PARAM_ALGORITHM = 4
PARAM_DIGITS = 5
PARAM_TYPE = 6
PARAM_COUNTER = 7

_UINT64_MASK = (1 << 64) - 1

ScanResult = namedtuple("ScanResult", ["kind", "accounts"])
"""kind is "migration" or "single"; accounts is a list of Account field dicts."""


def _read_varint(data, offset):
    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise CorruptData("truncated varint in migration payload")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value & _UINT64_MASK, offset
        shift += 7
        if shift >= 70:
            raise CorruptData("varint too long in migration payload")


def _to_int32(value):
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _to_int64(value):
    return value - (1 << 64) if value & (1 << 63) else value


def iter_fields(data):
    """
    Iterate over the top-level fields of a binary message.

    Yields:
        tuple: (field_number, wire_type, value) where value is an int for
            varint and fixed-width fields and bytes for length-delimited ones

    Raises:
        CorruptData: If the message is truncated or uses an unsupported wire type
    """
    offset = 0
    end = len(data)
    while offset < end:
        key, offset = _read_varint(data, offset)
        field_number = key >> 3
        wire_type = key & 0x07
        if field_number == 0:
            raise CorruptData("invalid field number 0 in migration payload")

        if wire_type == WIRE_VARINT:
            value, offset = _read_varint(data, offset)
        elif wire_type == WIRE_FIXED64:
            if offset + 8 > end:
                raise CorruptData("truncated 64-bit field in migration payload")
            value = int.from_bytes(data[offset:offset + 8], "little")
            offset += 8
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, offset = _read_varint(data, offset)
            if offset + length > end:
                raise CorruptData("truncated length-delimited field in migration payload")
            value = bytes(data[offset:offset + length])
            offset += length
        elif wire_type == WIRE_FIXED32:
            if offset + 4 > end:
                raise CorruptData("truncated 32-bit field in migration payload")
            value = int.from_bytes(data[offset:offset + 4], "little")
            offset += 4
        else:
            raise CorruptData(f"unsupported wire type {wire_type} in migration payload")

        yield field_number, wire_type, value


def _decode_text(value):
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptData("invalid UTF-8 text in migration payload") from e


def parse_otp_parameters(data):
    """Decode one OtpParameters block into a MigrationEntry; unknown fields are skipped."""
    entry = MigrationEntry()
    for field_number, wire_type, value in iter_fields(data):
        if wire_type == WIRE_LENGTH_DELIMITED:
            if field_number == PARAM_SECRET:
                entry.secret = value
            elif field_number == PARAM_NAME:
                entry.name = _decode_text(value)
            elif field_number == PARAM_ISSUER:
                entry.issuer = _decode_text(value)
        elif wire_type == WIRE_VARINT:
            if field_number == PARAM_ALGORITHM:
                entry.algorithm = _to_int32(value)
            elif field_number == PARAM_DIGITS:
                entry.digits = _to_int32(value)
            elif field_number == PARAM_TYPE:
                entry.type = _to_int32(value)
            elif field_number == PARAM_COUNTER:
                entry.counter = _to_int64(value)
    return entry


def parse_migration_payload(data):
    """
    Decode a binary MigrationPayload message.

    Args:
        data (bytes): Raw message bytes

    Returns:
        MigrationPayload: Decoded entries plus the batch metadata
    """
    payload = MigrationPayload()
    for field_number, wire_type, value in iter_fields(data):
        if field_number == PAYLOAD_OTP_PARAMETERS and wire_type == WIRE_LENGTH_DELIMITED:
            payload.entries.append(parse_otp_parameters(value))
        elif wire_type == WIRE_VARINT:
            if field_number == PAYLOAD_VERSION:
                payload.version = _to_int32(value)
            elif field_number == PAYLOAD_BATCH_SIZE:
                payload.batch_size = _to_int32(value)
            elif field_number == PAYLOAD_BATCH_INDEX:
                payload.batch_index = _to_int32(value)
            elif field_number == PAYLOAD_BATCH_ID:
                payload.batch_id = _to_int32(value)
    return payload


def entry_to_account_fields(entry):
    """
    Project a MigrationEntry into the fields of a new Account.

    The raw secret is re-encoded as Base32 and a missing issuer falls back
    to the account name.
    """
    return {
        "issuer": entry.issuer or entry.name,
        "name": entry.name,
        "secret": base32.encode(entry.secret),
    }


def _decode_base64(text):
    # parse_qs turns an unescaped '+' into a space
    text = text.strip().replace(" ", "+").replace("-", "+").replace("_", "/")
    text += "=" * (-len(text) % 4)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptData("migration data is not valid Base64") from e


def decode_migration_uri(uri):
    """
    Decode a bulk migration URI.

    Args:
        uri (str): ``otpauth-migration://...?data=...``

    Returns:
        MigrationPayload: The decoded payload, with at least one entry

    Raises:
        UnrecognizedFormat: If the URI does not use the migration scheme
        EmptyMigrationPayload: If the URI carries no data or no entries decode
        CorruptData: If the data is not valid Base64 or not a valid message
    """
    uri = uri.strip()
    if not uri.startswith(MIGRATION_PREFIX):
        raise UnrecognizedFormat("not a migration URI")

    params = urllib.parse.parse_qs(urllib.parse.urlsplit(uri).query)
    data = params.get("data", [""])[0]
    if not data:
        raise EmptyMigrationPayload("migration URI carries no data")

    payload = parse_migration_payload(_decode_base64(data))
    if not payload.entries:
        raise EmptyMigrationPayload("no accounts found in migration payload")

    logger.info(f"Decoded {len(payload.entries)} account(s) from migration payload "
                f"(batch {payload.batch_index + 1} of {payload.batch_size or 1})")
    return payload


def parse_otpauth_uri(uri):
    """
    Parse a single-account ``otpauth://totp/`` URI.

    The percent-decoded label is split on the first ':' into issuer and name.
    An explicit ``issuer`` parameter overrides the label's issuer, and the
    name is reused as issuer when neither provides one.

    Args:
        uri (str): Single-account provisioning URI

    Returns:
        dict: Account fields {issuer, name, secret}

    Raises:
        UnrecognizedFormat: If the URI does not use the otpauth://totp/ scheme
        MissingSecret: If there is no query string or no secret parameter
    """
    uri = uri.strip()
    if not uri.startswith(TOTP_PREFIX):
        raise UnrecognizedFormat("not an otpauth://totp/ URI")

    remainder = uri[len(TOTP_PREFIX):]
    label, separator, query = remainder.partition("?")
    if not separator:
        raise MissingSecret("URI has no parameters; the secret is required")

    params = dict(urllib.parse.parse_qsl(query, keep_blank_values=True))
    secret = "".join(params.get("secret", "").split())
    if not secret:
        raise MissingSecret("URI has no secret parameter")

    label = urllib.parse.unquote(label)
    if ":" in label:
        issuer, _, name = label.partition(":")
        issuer = issuer.strip()
        name = name.strip()
    else:
        issuer = ""
        name = label.strip()

    issuer_param = params.get("issuer", "").strip()
    if issuer_param:
        issuer = issuer_param
    if not issuer and name:
        issuer = name

    return {"issuer": issuer, "name": name, "secret": secret}


def parse_scanned_text(text):
    """
    Dispatch scanned QR text to the matching decoder.

    Args:
        text (str): Text read from a QR code

    Returns:
        ScanResult: kind "migration" with one entry per decoded account, or
            kind "single" with exactly one entry

    Raises:
        UnrecognizedFormat: If the text matches neither scheme
    """
    text = (text or "").strip()
    if text.startswith(MIGRATION_PREFIX):
        payload = decode_migration_uri(text)
        return ScanResult("migration", [entry_to_account_fields(entry) for entry in payload.entries])
    if text.startswith(TOTP_PREFIX):
        return ScanResult("single", [parse_otpauth_uri(text)])
    raise UnrecognizedFormat(
        'Expected "otpauth://totp/..." for one account or "otpauth-migration://..." for several'
    )
