"""
Bridge custody core.

- ResourceRegistry: resource id <-> asset routing, whitelist and asset kind
- TransferCodec: deposit and execution payload encoding/decoding
- Safe: custody ledger over asset contracts
- DepositStore: write-once deposit records
- ERC20Handler: authority-gated deposit, execution and withdrawal
"""

from .deposit_records import DepositRecord, DepositStore
from .handler import BridgeEvent, ERC20Handler
from .resource_registry import AssetEntry, AssetKind, ResourceID, ResourceRegistry
from .safe import LedgerSnapshot, Safe
from .transfer_codec import DepositPayload, ExecutionPayload, TransferCodec

__all__ = [
    "AssetEntry",
    "AssetKind",
    "BridgeEvent",
    "DepositPayload",
    "DepositRecord",
    "DepositStore",
    "ERC20Handler",
    "ExecutionPayload",
    "LedgerSnapshot",
    "ResourceID",
    "ResourceRegistry",
    "Safe",
    "TransferCodec",
]
