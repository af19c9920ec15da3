"""Address and identifier text encodings.

Addresses are bech32 strings carrying a 32-byte public key under a
human-readable prefix. Identifiers are CB58 strings: base58 over the raw
bytes followed by the last four bytes of their SHA-256 digest.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

HRP = "token"
PUBLIC_KEY_LEN = 32
ID_LEN = 32

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_LOOKUP = {char: index for index, char in enumerate(_BECH32_CHARSET)}
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LEN = 90
_CHECKSUM_LEN = 6

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_LOOKUP = {char: index for index, char in enumerate(_BASE58_ALPHABET)}
_CB58_CHECKSUM_LEN = 4


class AddressError(ValueError):
    """Raised when an address or identifier cannot be encoded or decoded."""


def _polymod(values: Iterable[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _create_checksum(hrp: str, data: list[int]) -> list[int]:
    polymod = _polymod(_hrp_expand(hrp) + data + [0] * _CHECKSUM_LEN) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_LEN)]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    accumulator = 0
    bits = 0
    result: list[int] = []
    max_value = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise AddressError("invalid data range")
        accumulator = (accumulator << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((accumulator >> bits) & max_value)
    if pad:
        if bits:
            result.append((accumulator << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (accumulator << (to_bits - bits)) & max_value:
        raise AddressError("invalid padding")
    return result


def _bech32_decode(text: str) -> tuple[str, list[int]]:
    if len(text) > _BECH32_MAX_LEN:
        raise AddressError(f"address too long: {len(text)} characters")
    if text.lower() != text and text.upper() != text:
        raise AddressError("address mixes upper and lower case")
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise AddressError("address holds invalid characters")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + _CHECKSUM_LEN + 1 > len(text):
        raise AddressError("address has no valid separator")
    hrp = text[:separator]
    try:
        data = [_BECH32_LOOKUP[c] for c in text[separator + 1 :]]
    except KeyError as exc:
        raise AddressError(f"invalid character in address: {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise AddressError("invalid address checksum")
    return hrp, data[:-_CHECKSUM_LEN]


def address(public_key: bytes, hrp: str = HRP) -> str:
    """Return the bech32 address of a 32-byte public key."""
    if len(public_key) != PUBLIC_KEY_LEN:
        raise AddressError(
            f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(public_key)}"
        )
    data = _convert_bits(public_key, 8, 5, pad=True)
    checksum = _create_checksum(hrp, data)
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in data + checksum)


def parse_address(text: str, hrp: str = HRP) -> bytes:
    """Return the public key carried by a bech32 address."""
    found_hrp, data = _bech32_decode(text)
    if found_hrp != hrp:
        raise AddressError(f"expected prefix {hrp!r}, found {found_hrp!r}")
    public_key = bytes(_convert_bits(data, 5, 8, pad=False))
    if len(public_key) != PUBLIC_KEY_LEN:
        raise AddressError(
            f"public key must be {PUBLIC_KEY_LEN} bytes, got {len(public_key)}"
        )
    return public_key


def _checksum4(raw: bytes) -> bytes:
    return hashlib.sha256(raw).digest()[-_CB58_CHECKSUM_LEN:]


def _base58_encode(raw: bytes) -> str:
    number = int.from_bytes(raw, "big")
    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    leading = len(raw) - len(raw.lstrip(b"\x00"))
    return "1" * leading + "".join(reversed(digits))


def _base58_decode(text: str) -> bytes:
    number = 0
    for char in text:
        try:
            number = number * 58 + _BASE58_LOOKUP[char]
        except KeyError:
            raise AddressError(f"invalid base58 character: {char!r}") from None
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    leading = len(text) - len(text.lstrip("1"))
    return b"\x00" * leading + body


def encode_id(raw: bytes) -> str:
    """Return the CB58 string of a 32-byte identifier."""
    if len(raw) != ID_LEN:
        raise AddressError(f"identifier must be {ID_LEN} bytes, got {len(raw)}")
    raw = bytes(raw)
    return _base58_encode(raw + _checksum4(raw))


def decode_id(text: str) -> bytes:
    """Return the 32-byte identifier written as a CB58 string."""
    decoded = _base58_decode(text)
    if len(decoded) < _CB58_CHECKSUM_LEN:
        raise AddressError("identifier too short")
    raw, checksum = decoded[:-_CB58_CHECKSUM_LEN], decoded[-_CB58_CHECKSUM_LEN:]
    if _checksum4(raw) != checksum:
        raise AddressError("invalid identifier checksum")
    if len(raw) != ID_LEN:
        raise AddressError(f"identifier must be {ID_LEN} bytes, got {len(raw)}")
    return raw