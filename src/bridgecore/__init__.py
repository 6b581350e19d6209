"""
bridgecore - Cross-Chain Bridge Custody Core

Asset-custody and message-encoding core of a cross-chain bridge.

Main Components:
- ResourceRegistry: resource id <-> asset routing and whitelist/burnable flags
- TransferCodec: bounds-checked encoding/decoding of transfer payloads
- Safe: custody ledger for lock/release and burn/mint value movement
- ERC20Handler: authority-gated deposit and execution entry points

For usage and configuration, see: README.md
"""

__version__ = "0.1.0"
__author__ = "bridgecore Development Team"

__all__ = []
