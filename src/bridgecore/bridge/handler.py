"""
ERC20 bridge handler.

Entry points invoked by the bridge authority:
- deposit: burn (burnable asset) or lock (custodied asset) and record the deposit
- execute_transfer: mint (burnable asset) or release (custodied asset) to a recipient
- withdraw: release custodied value directly, bypassing resource routing

Every mutating call checks the caller against the configured authority
before decoding or touching the ledger, and runs under the handler lock so
calls never interleave. Execution calls carry no replay protection here;
the authority must invoke each authoritative instruction at most once.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

from bridgecore.bridge.deposit_records import DepositRecord, DepositStore
from bridgecore.bridge.resource_registry import AssetEntry, AssetKind, ResourceID, ResourceRegistry
from bridgecore.bridge.safe import Safe
from bridgecore.bridge.transfer_codec import UINT256_MAX, TransferCodec
from bridgecore.core import config, metrics
from bridgecore.core.address import ZERO_ADDRESS, normalize_address
from bridgecore.core.config import HandlerSetup
from bridgecore.core.exceptions import (
    BridgeError,
    ConfigurationError,
    DuplicateDepositError,
    InvalidArgumentError,
    UnauthorizedCallerError,
    UnknownOrUnwhitelistedAssetError,
    get_error_context,
)

logger = logging.getLogger(__name__)


@dataclass
class BridgeEvent:
    """Represents a handler event."""

    event_type: str  # "Deposit", "Execution" or "Withdraw"
    asset_address: str
    amount: int
    account: str
    resource_id: ResourceID | None = None
    destination_chain_id: int | None = None
    deposit_nonce: int | None = None
    timestamp: float = field(default_factory=time.time)


def _address_argument(name: str, value: Any) -> str:
    try:
        return normalize_address(value)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid {name}: {exc}", details={"argument": name}) from exc


def _resource_argument(value: Any) -> ResourceID:
    try:
        return ResourceID.coerce(value)
    except ValueError as exc:
        raise InvalidArgumentError(f"Invalid resource_id: {exc}", details={"argument": "resource_id"}) from exc


def _uint_argument(name: str, value: Any) -> int:
    # bools are not accepted as integers
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT256_MAX:
        raise InvalidArgumentError(
            f"{name} must be an unsigned 256-bit integer, got {value!r}",
            details={"argument": name},
        )
    return value


class ERC20Handler:
    """
    Orchestrates routing, decoding and custody for fungible assets.

    Args:
        bridge_address: The only identity allowed to call mutating entry points
        safe: Custody ledger; its custody account receives locked value
        registry: Resource registry (a fresh one is created when omitted)
        codec: Payload codec (a default-width codec when omitted)
        store: Deposit record store (a fresh one when omitted)
        initial_resource_ids: Resource ids to bind at construction
        initial_asset_addresses: Asset addresses matching initial_resource_ids
        burnable_assets: Assets to mark burnable at construction
        event_log_limit: Most recent events kept in ``events``
            (``BRIDGE_EVENT_LOG_LIMIT`` when omitted); older ones are dropped

    Raises:
        ConfigurationError: If the initial binding lists differ in length or
            contain invalid entries
    """

    def __init__(
        self,
        bridge_address: str,
        safe: Safe,
        registry: ResourceRegistry | None = None,
        codec: TransferCodec | None = None,
        store: DepositStore | None = None,
        initial_resource_ids: Iterable[ResourceID | bytes | str] = (),
        initial_asset_addresses: Iterable[str] = (),
        burnable_assets: Iterable[str] = (),
        event_log_limit: int | None = None,
    ) -> None:
        try:
            self.bridge_address = normalize_address(bridge_address)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid bridge address: {bridge_address}") from exc
        if self.bridge_address == ZERO_ADDRESS:
            raise ConfigurationError("Bridge address cannot be the zero address")

        self.safe = safe
        self.registry = registry or ResourceRegistry()
        self.codec = codec or TransferCodec()
        self.store = store or DepositStore()
        limit = config.EVENT_LOG_LIMIT if event_log_limit is None else event_log_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ConfigurationError(f"Event log limit must be a positive integer, got {limit!r}")
        self.events: deque[BridgeEvent] = deque(maxlen=limit)
        self._lock = threading.RLock()

        self._apply_initial_setup(
            list(initial_resource_ids), list(initial_asset_addresses), list(burnable_assets)
        )

    @classmethod
    def from_setup(cls, setup: HandlerSetup, safe: Safe, **kwargs: Any) -> "ERC20Handler":
        """Build a handler from a validated HandlerSetup."""
        custody = normalize_address(setup.custody_address)
        if custody != safe.custody_account:
            raise ConfigurationError(
                f"Setup custody address {custody} does not match safe custody account {safe.custody_account}"
            )
        return cls(
            setup.bridge_address,
            safe,
            initial_resource_ids=setup.resource_ids,
            initial_asset_addresses=setup.asset_addresses,
            burnable_assets=setup.burnable_assets,
            **kwargs,
        )

    @property
    def custody_account(self) -> str:
        return self.safe.custody_account

    # ==================== Bridge Entry Points ====================

    def deposit(
        self,
        caller: str,
        resource_id: ResourceID | bytes | str,
        destination_chain_id: int,
        deposit_nonce: int,
        depositor: str,
        payload: bytes,
    ) -> None:
        """
        Accept a deposit: burn or lock the amount and record the deposit.

        Args:
            caller: Calling identity (must be the bridge authority)
            resource_id: Routing key of the deposited asset
            destination_chain_id: Chain the transfer is bound for
            deposit_nonce: Caller-assigned nonce, unique per destination chain
            depositor: Account whose tokens are burned or locked
            payload: Encoded deposit payload

        Raises:
            UnauthorizedCallerError: If caller is not the bridge authority
            InvalidArgumentError: If the chain id, nonce, depositor or resource id is malformed
            MalformedPayloadError: If the payload cannot be decoded
            UnknownOrUnwhitelistedAssetError: If the resource id is not routable
            DuplicateDepositError: If the (chain, nonce) key is already recorded
            InsufficientCustodyError / ExternalAssetCallError: From the Safe
        """
        with self._lock:
            try:
                self._require_bridge(caller)
                _uint_argument("destination_chain_id", destination_chain_id)
                _uint_argument("deposit_nonce", deposit_nonce)
                depositor_norm = _address_argument("depositor", depositor)
                rid = _resource_argument(resource_id)
                decoded = self.codec.decode_deposit(payload)
                entry = self._route(rid)

                if self.store.contains(destination_chain_id, deposit_nonce):
                    raise DuplicateDepositError(
                        f"Deposit nonce {deposit_nonce} already recorded for chain {destination_chain_id}",
                        details={"destination_chain_id": destination_chain_id, "deposit_nonce": deposit_nonce},
                    )

                if entry.kind is AssetKind.BURNABLE:
                    self.safe.burn(entry.address, depositor_norm, decoded.amount)
                elif entry.kind is AssetKind.CUSTODIED:
                    self.safe.lock(entry.address, depositor_norm, self.custody_account, decoded.amount)
                else:
                    raise UnknownOrUnwhitelistedAssetError(f"Unsupported asset kind {entry.kind}")

                record = DepositRecord(
                    asset_address=entry.address,
                    destination_chain_id=destination_chain_id,
                    resource_id=rid,
                    recipient_address_length=decoded.recipient_length,
                    recipient_address=decoded.recipient_bytes,
                    depositor=depositor_norm,
                    amount=decoded.amount,
                )
                self.store.put(destination_chain_id, deposit_nonce, record)
            except BridgeError as exc:
                self._reject("deposit", exc)
                raise

            self.events.append(
                BridgeEvent(
                    event_type="Deposit",
                    asset_address=entry.address,
                    amount=decoded.amount,
                    account=depositor_norm,
                    resource_id=rid,
                    destination_chain_id=destination_chain_id,
                    deposit_nonce=deposit_nonce,
                )
            )
            metrics.record_deposit(entry.kind.value)

        logger.info(
            "Deposit %s accepted for chain %s",
            deposit_nonce,
            destination_chain_id,
            extra={
                "event": "handler.deposit",
                "resource_id": rid.hex(),
                "asset": entry.address,
                "kind": entry.kind.value,
                "depositor": depositor_norm[:10],
                "amount": decoded.amount,
            },
        )

    def execute_transfer(self, caller: str, resource_id: ResourceID | bytes | str, payload: bytes) -> None:
        """
        Execute an authoritative transfer instruction: mint or release.

        The authority guarantees each instruction is executed at most once.

        Raises:
            UnauthorizedCallerError: If caller is not the bridge authority
            MalformedPayloadError: If the payload cannot be decoded
            UnknownOrUnwhitelistedAssetError: If the resource id is not routable
            InsufficientCustodyError / ExternalAssetCallError: From the Safe
        """
        with self._lock:
            try:
                self._require_bridge(caller)
                rid = _resource_argument(resource_id)
                decoded = self.codec.decode_execution(payload)
                entry = self._route(rid)
                recipient = decoded.recipient

                if entry.kind is AssetKind.BURNABLE:
                    self.safe.mint(entry.address, recipient, decoded.amount)
                elif entry.kind is AssetKind.CUSTODIED:
                    self.safe.release(entry.address, recipient, decoded.amount)
                else:
                    raise UnknownOrUnwhitelistedAssetError(f"Unsupported asset kind {entry.kind}")
            except BridgeError as exc:
                self._reject("execute_transfer", exc)
                raise

            self.events.append(
                BridgeEvent(
                    event_type="Execution",
                    asset_address=entry.address,
                    amount=decoded.amount,
                    account=recipient,
                    resource_id=rid,
                )
            )
            metrics.record_execution(entry.kind.value)

        logger.info(
            "Transfer executed",
            extra={
                "event": "handler.execute_transfer",
                "resource_id": rid.hex(),
                "asset": entry.address,
                "kind": entry.kind.value,
                "recipient": recipient[:10],
                "amount": decoded.amount,
            },
        )

    def withdraw(self, caller: str, asset: str, recipient: str, amount: int) -> None:
        """Release custodied value directly to ``recipient``; no deposit record is involved."""
        with self._lock:
            try:
                self._require_bridge(caller)
                asset_norm = _address_argument("asset", asset)
                if asset_norm == ZERO_ADDRESS:
                    raise InvalidArgumentError("Asset cannot be the zero address", details={"argument": "asset"})
                recipient_norm = _address_argument("recipient", recipient)
                _uint_argument("amount", amount)
                self.safe.release(asset_norm, recipient_norm, amount)
            except BridgeError as exc:
                self._reject("withdraw", exc)
                raise

            self.events.append(
                BridgeEvent(
                    event_type="Withdraw",
                    asset_address=asset_norm,
                    amount=amount,
                    account=recipient_norm,
                )
            )

        logger.warning(
            "Administrative withdrawal of %s from custody",
            amount,
            extra={"event": "handler.withdraw", "asset": asset_norm, "amount": amount},
        )

    def get_deposit_record(self, destination_chain_id: int, deposit_nonce: int) -> DepositRecord:
        """Return the deposit record for a key, or an empty record if none exists."""
        return self.store.get(destination_chain_id, deposit_nonce)

    # ==================== Administrative Pass-throughs ====================

    def set_resource(self, caller: str, resource_id: ResourceID | bytes | str, asset: str) -> None:
        """Bind a resource id to an asset and whitelist the asset."""
        with self._lock:
            self._require_bridge(caller)
            self.registry.register(resource_id, asset)
            self.registry.set_whitelisted(asset, True)

    def set_burnable(self, caller: str, asset: str) -> None:
        with self._lock:
            self._require_bridge(caller)
            self.registry.set_burnable(asset)

    def set_whitelisted(self, caller: str, asset: str, enabled: bool) -> None:
        with self._lock:
            self._require_bridge(caller)
            self.registry.set_whitelisted(asset, enabled)

    def fund_custody(self, caller: str, asset: str, owner: str, amount: int) -> None:
        """Pre-fund the custody pool for ``asset`` from ``owner``."""
        with self._lock:
            self._require_bridge(caller)
            self.safe.fund_in(asset, owner, amount)

    # ==================== Helpers ====================

    def _require_bridge(self, caller: str) -> None:
        try:
            caller_norm = normalize_address(caller)
        except ValueError:
            caller_norm = None
        if caller_norm != self.bridge_address:
            raise UnauthorizedCallerError(
                "Caller is not the bridge authority",
                details={"caller": str(caller)[:10]},
            )

    def _route(self, rid: ResourceID) -> AssetEntry:
        asset = self.registry.resolve(rid)
        if asset == ZERO_ADDRESS or not self.registry.is_whitelisted(asset):
            raise UnknownOrUnwhitelistedAssetError(
                f"Resource {rid.hex()} does not resolve to a whitelisted asset",
                details={"resource_id": rid.hex(), "asset": asset},
            )
        return self.registry.entry(asset)

    def _reject(self, operation: str, exc: BridgeError) -> None:
        metrics.record_rejection(operation, exc)
        logger.warning(
            "Handler %s rejected: %s",
            operation,
            exc.message,
            extra={"event": f"handler.{operation}.rejected", **get_error_context(exc)},
        )

    def _apply_initial_setup(
        self,
        resource_ids: list[ResourceID | bytes | str],
        asset_addresses: list[str],
        burnable_assets: list[str],
    ) -> None:
        if len(resource_ids) != len(asset_addresses):
            raise ConfigurationError(
                f"Initial resource ids and asset addresses differ in length "
                f"({len(resource_ids)} != {len(asset_addresses)})"
            )

        # Validate everything before the registry sees any of it
        try:
            bindings = [
                (ResourceID.coerce(rid), normalize_address(asset))
                for rid, asset in zip(resource_ids, asset_addresses)
            ]
            burnables = [normalize_address(asset) for asset in burnable_assets]
        except ValueError as exc:
            raise ConfigurationError(f"Invalid initial handler setup: {exc}") from exc

        seen_rids = [rid for rid, _ in bindings]
        seen_assets = [asset for _, asset in bindings]
        if len(set(seen_rids)) != len(seen_rids):
            raise ConfigurationError("A resource id appears in more than one initial binding")
        if len(set(seen_assets)) != len(seen_assets):
            raise ConfigurationError("An asset appears in more than one initial resource binding")
        for rid, asset in bindings:
            bound = self.registry.resource_id_of(asset)
            if bound is not None and bound != rid:
                raise ConfigurationError(f"Asset {asset} is already bound to resource {bound.hex()}")
        if any(asset == ZERO_ADDRESS for asset in seen_assets + burnables):
            raise ConfigurationError("Initial setup cannot reference the zero address")

        for rid, asset in bindings:
            self.registry.register(rid, asset)
            self.registry.set_whitelisted(asset, True)
        for asset in burnables:
            self.registry.set_burnable(asset)

        if bindings or burnables:
            logger.info(
                "Handler initialized",
                extra={
                    "event": "handler.initialized",
                    "resources": len(bindings),
                    "burnable": len(burnables),
                },
            )
