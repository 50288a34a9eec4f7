"""
Base32 codec for OTP secrets (RFC 4648 alphabet).

Encoding emits no '=' padding. Decoding is case-insensitive, strips trailing
padding, and drops a trailing partial byte, so secrets whose length is not a
multiple of eight characters (common in provisioning URIs) still decode.
"""

from ..errors import InvalidEncoding

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_LOOKUP = {char: index for index, char in enumerate(ALPHABET)}


def encode(data):
    """
    Encode bytes as unpadded Base32 text.

    Args:
        data (bytes): Bytes to encode

    Returns:
        str: Base32 text, most significant bit first
    """
    output = []
    buffer = 0
    bits = 0
    for byte in bytes(data):
        buffer = (buffer << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            output.append(ALPHABET[(buffer >> bits) & 0x1F])
    if bits:
        output.append(ALPHABET[(buffer << (5 - bits)) & 0x1F])
    return "".join(output)


def decode(text):
    """
    Decode Base32 text to bytes.

    Args:
        text (str): Base32 text, any case, optionally '=' padded

    Returns:
        bytes: Decoded bytes; trailing bits that do not fill a byte are dropped

    Raises:
        InvalidEncoding: If any character is outside the Base32 alphabet
    """
    if not isinstance(text, str):
        raise InvalidEncoding(f"expected text, got {type(text).__name__}")

    output = bytearray()
    buffer = 0
    bits = 0
    for position, char in enumerate(text.upper().rstrip("=")):
        value = _LOOKUP.get(char)
        if value is None:
            raise InvalidEncoding(f"invalid Base32 character at position {position}")
        buffer = ((buffer << 5) | value) & 0xFFF
        bits += 5
        if bits >= 8:
            bits -= 8
            output.append((buffer >> bits) & 0xFF)
    return bytes(output)


def is_valid(text):
    """Return True if text decodes as Base32."""
    try:
        decode(text)
    except InvalidEncoding:
        return False
    return True
