"""
Deposit records keyed by (destination chain id, deposit nonce).

Records are written once by the handler and never mutated or deleted.
The store can be snapshotted to a JSON file and reloaded.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bridgecore.bridge.resource_registry import RESOURCE_ID_BYTES, ResourceID
from bridgecore.core.address import (
    ADDRESS_BYTES,
    ZERO_ADDRESS,
    address_from_bytes,
    normalize_address,
    to_checksum_address,
)
from bridgecore.core.exceptions import DuplicateDepositError

logger = logging.getLogger(__name__)

EMPTY_RESOURCE_ID = ResourceID(b"\x00" * RESOURCE_ID_BYTES)


@dataclass(frozen=True)
class DepositRecord:
    """Audit entry correlating a deposit's inputs with its key."""

    asset_address: str
    destination_chain_id: int
    resource_id: ResourceID
    recipient_address_length: int
    recipient_address: bytes
    depositor: str
    amount: int

    @classmethod
    def empty(cls) -> "DepositRecord":
        return cls(
            asset_address=ZERO_ADDRESS,
            destination_chain_id=0,
            resource_id=EMPTY_RESOURCE_ID,
            recipient_address_length=0,
            recipient_address=b"",
            depositor=ZERO_ADDRESS,
            amount=0,
        )

    def is_empty(self) -> bool:
        return self == DepositRecord.empty()

    @property
    def recipient(self) -> str | None:
        """Recipient account if the deposit carried a full-width address."""
        if len(self.recipient_address) < ADDRESS_BYTES:
            return None
        return address_from_bytes(self.recipient_address[:ADDRESS_BYTES])

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_address": to_checksum_address(self.asset_address),
            "destination_chain_id": self.destination_chain_id,
            "resource_id": self.resource_id.hex(),
            "recipient_address_length": self.recipient_address_length,
            "recipient_address": "0x" + self.recipient_address.hex(),
            "depositor": to_checksum_address(self.depositor),
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DepositRecord":
        recipient_hex = data.get("recipient_address", "0x")
        return cls(
            asset_address=normalize_address(data["asset_address"]),
            destination_chain_id=int(data["destination_chain_id"]),
            resource_id=ResourceID.from_hex(data["resource_id"]),
            recipient_address_length=int(data.get("recipient_address_length", 0)),
            recipient_address=bytes.fromhex(recipient_hex[2:] if recipient_hex.startswith("0x") else recipient_hex),
            depositor=normalize_address(data["depositor"]),
            amount=int(data["amount"]),
        )


class DepositStore:
    def __init__(self) -> None:
        self._records: dict[tuple[int, int], DepositRecord] = {}
        self._lock = threading.RLock()

    def contains(self, destination_chain_id: int, deposit_nonce: int) -> bool:
        with self._lock:
            return (destination_chain_id, deposit_nonce) in self._records

    def put(self, destination_chain_id: int, deposit_nonce: int, record: DepositRecord) -> None:
        """
        Store a record under its key.

        Raises:
            DuplicateDepositError: If the key already holds a record
        """
        key = (destination_chain_id, deposit_nonce)
        with self._lock:
            if key in self._records:
                raise DuplicateDepositError(
                    f"Deposit nonce {deposit_nonce} already recorded for chain {destination_chain_id}",
                    details={"destination_chain_id": destination_chain_id, "deposit_nonce": deposit_nonce},
                )
            self._records[key] = record

    def get(self, destination_chain_id: int, deposit_nonce: int) -> DepositRecord:
        """Return the record for a key, or an empty record if absent."""
        with self._lock:
            return self._records.get((destination_chain_id, deposit_nonce), DepositRecord.empty())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ===== Persistence =====
    def save(self, path: str | Path) -> None:
        """Write a JSON snapshot atomically (temp file then rename)."""
        state_path = Path(path)
        state_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            payload = {
                "records": [
                    {"destination_chain_id": chain_id, "deposit_nonce": nonce, "record": record.to_dict()}
                    for (chain_id, nonce), record in sorted(self._records.items())
                ]
            }
        tmp_path = f"{state_path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_path, state_path)
        logger.info(
            "Deposit records saved",
            extra={"event": "deposits.saved", "path": str(state_path), "count": len(payload["records"])},
        )

    @classmethod
    def load(cls, path: str | Path) -> "DepositStore":
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        store = cls()
        for item in data.get("records", []):
            store.put(
                int(item["destination_chain_id"]),
                int(item["deposit_nonce"]),
                DepositRecord.from_dict(item["record"]),
            )
        logger.info(
            "Deposit records loaded",
            extra={"event": "deposits.loaded", "path": str(path), "count": len(store)},
        )
        return store
