"""
Resource routing for the bridge handler.

Maps 32-byte resource ids to asset contract addresses (one-to-one in each
direction) and tracks per-asset whitelist and asset-kind classification.
Pure in-memory state; the maps are only reachable through the methods below.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum

from bridgecore.core.address import ZERO_ADDRESS, address_to_bytes, normalize_address
from bridgecore.core.exceptions import ResourceConflictError

logger = logging.getLogger(__name__)

RESOURCE_ID_BYTES = 32

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]*")


class AssetKind(Enum):
    CUSTODIED = "custodied"  # lock on deposit, release on execution
    BURNABLE = "burnable"  # burn on deposit, mint on execution


@dataclass(frozen=True)
class ResourceID:
    """Opaque 32-byte routing key."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)):
            raise ValueError("ResourceID value must be bytes")
        if len(self.value) != RESOURCE_ID_BYTES:
            raise ValueError(f"ResourceID must be {RESOURCE_ID_BYTES} bytes, got {len(self.value)}")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def from_hex(cls, hex_value: str) -> "ResourceID":
        hex_part = hex_value[2:] if hex_value[:2].lower() == "0x" else hex_value
        if not _HEX_DIGITS.fullmatch(hex_part) or len(hex_part) % 2:
            raise ValueError(f"Invalid hex characters in resource id: {hex_value}")
        raw = bytes.fromhex(hex_part)
        return cls(raw)

    @classmethod
    def coerce(cls, value: "ResourceID | bytes | str") -> "ResourceID":
        if isinstance(value, ResourceID):
            return value
        if isinstance(value, str):
            return cls.from_hex(value)
        return cls(value)

    @classmethod
    def for_asset(cls, asset_address: str, chain_id: int) -> "ResourceID":
        """
        Build the conventional resource id for an asset on a source chain.

        The asset address bytes are followed by the minimal big-endian
        encoding of the chain id and the result is left-padded with zeros
        to 32 bytes.
        """
        if not isinstance(chain_id, int) or chain_id < 0:
            raise ValueError("Chain id must be a non-negative integer.")
        chain_bytes = chain_id.to_bytes(max(1, (chain_id.bit_length() + 7) // 8), "big")
        raw = address_to_bytes(asset_address) + chain_bytes
        if len(raw) > RESOURCE_ID_BYTES:
            raise ValueError(f"Chain id {chain_id} too large for a resource id")
        return cls(raw.rjust(RESOURCE_ID_BYTES, b"\x00"))

    def hex(self) -> str:
        return "0x" + self.value.hex()

    def __repr__(self) -> str:
        return f"ResourceID({self.hex()})"


@dataclass(frozen=True)
class AssetEntry:
    address: str
    kind: AssetKind = AssetKind.CUSTODIED
    whitelisted: bool = False

    @property
    def is_burnable(self) -> bool:
        return self.kind is AssetKind.BURNABLE


class ResourceRegistry:
    def __init__(self) -> None:
        self._asset_by_resource: dict[ResourceID, str] = {}
        self._resource_by_asset: dict[str, ResourceID] = {}
        self._entries: dict[str, AssetEntry] = {}
        self._lock = threading.RLock()

    def register(self, resource_id: ResourceID | bytes | str, asset_address: str) -> None:
        """
        Bind a resource id to an asset address.

        Re-registering a resource id replaces its previous binding. An asset
        already bound to a different resource id is rejected.
        """
        rid = ResourceID.coerce(resource_id)
        asset = normalize_address(asset_address)
        if asset == ZERO_ADDRESS:
            raise ValueError("Cannot register the zero address as an asset.")

        with self._lock:
            bound = self._resource_by_asset.get(asset)
            if bound is not None and bound != rid:
                raise ResourceConflictError(
                    f"Asset {asset} is already bound to resource {bound.hex()}",
                    details={"asset": asset, "resource_id": bound.hex()},
                )

            previous = self._asset_by_resource.get(rid)
            if previous is not None and previous != asset:
                del self._resource_by_asset[previous]

            self._asset_by_resource[rid] = asset
            self._resource_by_asset[asset] = rid
            self._entries.setdefault(asset, AssetEntry(address=asset))

        logger.info(
            "Resource registered",
            extra={
                "event": "registry.register",
                "resource_id": rid.hex(),
                "asset": asset,
                "replaced": previous if previous not in (None, asset) else None,
            },
        )

    def set_burnable(self, asset_address: str) -> None:
        """Mark an asset as burn/mint. Idempotent; there is no way back."""
        asset = normalize_address(asset_address)
        with self._lock:
            entry = self._entries.get(asset, AssetEntry(address=asset))
            if entry.is_burnable:
                return
            self._entries[asset] = AssetEntry(
                address=asset, kind=AssetKind.BURNABLE, whitelisted=entry.whitelisted
            )
        logger.info("Asset marked burnable", extra={"event": "registry.set_burnable", "asset": asset})

    def set_whitelisted(self, asset_address: str, enabled: bool) -> None:
        asset = normalize_address(asset_address)
        with self._lock:
            entry = self._entries.get(asset, AssetEntry(address=asset))
            self._entries[asset] = AssetEntry(address=asset, kind=entry.kind, whitelisted=bool(enabled))
        logger.info(
            "Asset whitelist updated",
            extra={"event": "registry.set_whitelisted", "asset": asset, "enabled": bool(enabled)},
        )

    def resolve(self, resource_id: ResourceID | bytes | str) -> str:
        """Return the asset bound to a resource id, or ZERO_ADDRESS if none."""
        rid = ResourceID.coerce(resource_id)
        with self._lock:
            asset = self._asset_by_resource.get(rid, ZERO_ADDRESS)
        logger.debug(
            "Resource resolved",
            extra={"event": "registry.resolve", "resource_id": rid.hex(), "asset": asset},
        )
        return asset

    def resource_id_of(self, asset_address: str) -> ResourceID | None:
        with self._lock:
            return self._resource_by_asset.get(normalize_address(asset_address))

    def entry(self, asset_address: str) -> AssetEntry:
        """Return the classification of an asset; unknown assets read as not whitelisted."""
        asset = normalize_address(asset_address)
        with self._lock:
            return self._entries.get(asset, AssetEntry(address=asset))

    def is_whitelisted(self, asset_address: str) -> bool:
        asset = normalize_address(asset_address)
        if asset == ZERO_ADDRESS:
            return False
        return self.entry(asset).whitelisted

    def is_burnable(self, asset_address: str) -> bool:
        return self.entry(asset_address).is_burnable

    def __len__(self) -> int:
        with self._lock:
            return len(self._asset_by_resource)
