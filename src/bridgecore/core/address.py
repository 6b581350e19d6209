"""
Account address helpers - EIP-55 Style Mixed-Case Encoding

Addresses are handled internally as lowercase ``0x``-prefixed hex strings of
20 bytes. Checksummed form is produced only for display and serialization.

Address Format:
- Raw:      0x7a8b9c0d1e2f3a4b5c6d7e8f9a0b1c2d3e4f5a6b
- Checksum: 0x7A8b9C0d1E2f3A4b5C6D7e8F9a0B1c2D3e4F5A6b
"""

from __future__ import annotations

import re

from Crypto.Hash import keccak

ADDRESS_BYTES = 20
ZERO_ADDRESS = "0x" + "0" * (ADDRESS_BYTES * 2)

_HEX_ADDRESS = re.compile(r"[0-9a-fA-F]{40}")


def _keccak256(data: bytes) -> bytes:
    """Compute keccak256 hash (same as Ethereum)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def normalize_address(address: str) -> str:
    """
    Normalize an address to lowercase ``0x`` hex.

    Args:
        address: Address with or without ``0x`` prefix, any case

    Returns:
        Lowercase ``0x``-prefixed address

    Raises:
        ValueError: If address is not 20 bytes of hex
    """
    if not isinstance(address, str):
        raise ValueError(f"Address must be a string, got {type(address).__name__}")
    hex_part = address[2:] if address[:2].lower() == "0x" else address
    if len(hex_part) != ADDRESS_BYTES * 2:
        raise ValueError(f"Address hex part must be {ADDRESS_BYTES * 2} characters, got {len(hex_part)}")
    if not _HEX_ADDRESS.fullmatch(hex_part):
        raise ValueError(f"Invalid hex characters in address: {address}")
    return "0x" + hex_part.lower()


def is_zero_address(address: str) -> bool:
    return normalize_address(address) == ZERO_ADDRESS


def address_from_bytes(raw: bytes) -> str:
    """Build an address from exactly 20 raw bytes."""
    if len(raw) != ADDRESS_BYTES:
        raise ValueError(f"Address must be {ADDRESS_BYTES} bytes, got {len(raw)}")
    return "0x" + bytes(raw).hex()


def address_to_bytes(address: str) -> bytes:
    return bytes.fromhex(normalize_address(address)[2:])


def to_checksum_address(address: str) -> str:
    """
    Convert address to checksummed format (EIP-55).

    Args:
        address: Address (with or without checksum)

    Returns:
        Checksummed address with mixed-case hex

    Raises:
        ValueError: If address format is invalid

    Example:
        >>> to_checksum_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
        '0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed'
    """
    hex_lower = normalize_address(address)[2:]
    address_hash = _keccak256(hex_lower.encode("utf-8")).hex()

    # Uppercase each letter whose matching hash nibble is >= 8
    checksummed = "".join(
        char.upper() if char.isalpha() and int(address_hash[i], 16) >= 8 else char
        for i, char in enumerate(hex_lower)
    )
    return "0x" + checksummed


def is_checksum_valid(address: str) -> bool:
    """Return True if a mixed-case address carries a correct EIP-55 checksum."""
    try:
        return to_checksum_address(address) == address
    except ValueError:
        return False
