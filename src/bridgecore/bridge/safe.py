"""
Custody ledger for bridged fungible assets.

The Safe owns every value movement the handler performs against an asset
contract and keeps per-asset totals:

- balance_by_asset: value held in custody (lock / fund-in up, release down)
- burned_by_asset: cumulative amount destroyed on deposit
- minted_by_asset: cumulative amount issued on execution

An asset contract call counts as successful only when it returns exactly
``True``. Anything else, including an exception, raises ExternalAssetCallError
and leaves the ledger untouched. Ledger mutation for a given asset is
serialized behind a per-asset lock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from bridgecore.core import metrics
from bridgecore.core.address import ZERO_ADDRESS, normalize_address
from bridgecore.core.exceptions import ExternalAssetCallError, InsufficientCustodyError

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


class AssetContract(Protocol):
    def transfer(self, sender: str, recipient: str, amount: int) -> Any: ...

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> Any: ...

    def mint(self, minter: str, to: str, amount: int) -> Any: ...

    def burn_from(self, spender: str, from_addr: str, amount: int) -> Any: ...


class AssetDirectory(Protocol):
    def get_token(self, address: str) -> AssetContract | None: ...


@dataclass(frozen=True)
class LedgerSnapshot:
    asset: str
    balance: int
    burned: int
    minted: int


class Safe:
    """
    Custody ledger acting on behalf of ``custody_account``.

    Args:
        custody_account: Address that holds custodied value and carries the
            minter role / allowances on asset contracts
        assets: Directory resolving an asset address to its contract
    """

    def __init__(self, custody_account: str, assets: AssetDirectory) -> None:
        self.custody_account = normalize_address(custody_account)
        if self.custody_account == ZERO_ADDRESS:
            raise ValueError("Custody account cannot be the zero address.")
        self.assets = assets

        self._balances: dict[str, int] = defaultdict(int)
        self._burned: dict[str, int] = defaultdict(int)
        self._minted: dict[str, int] = defaultdict(int)
        self._asset_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ==================== Queries ====================

    def balance_of(self, asset: str) -> int:
        return self._balances.get(normalize_address(asset), 0)

    def burned_of(self, asset: str) -> int:
        return self._burned.get(normalize_address(asset), 0)

    def minted_of(self, asset: str) -> int:
        return self._minted.get(normalize_address(asset), 0)

    def snapshot(self, asset: str) -> LedgerSnapshot:
        asset_norm = normalize_address(asset)
        with self._asset_lock(asset_norm):
            return LedgerSnapshot(
                asset=asset_norm,
                balance=self._balances.get(asset_norm, 0),
                burned=self._burned.get(asset_norm, 0),
                minted=self._minted.get(asset_norm, 0),
            )

    # ==================== Custody Operations ====================

    def fund_in(self, asset: str, owner: str, amount: int) -> None:
        """Pull ``amount`` from ``owner`` into custody without a deposit."""
        asset_norm, amount = self._prepare(asset, amount)
        owner_norm = normalize_address(owner)
        with self._asset_lock(asset_norm):
            self._call(
                asset_norm,
                "transfer_from",
                lambda token: token.transfer_from(
                    self.custody_account, owner_norm, self.custody_account, amount
                ),
            )
            self._balances[asset_norm] += amount
            self._publish(asset_norm)
        self._log("safe.fund_in", asset_norm, amount, owner=owner_norm)

    def lock(self, asset: str, owner: str, to: str, amount: int) -> None:
        """Move ``amount`` from ``owner`` to ``to`` and count it as custodied."""
        asset_norm, amount = self._prepare(asset, amount)
        owner_norm = normalize_address(owner)
        to_norm = normalize_address(to)
        with self._asset_lock(asset_norm):
            self._call(
                asset_norm,
                "transfer_from",
                lambda token: token.transfer_from(self.custody_account, owner_norm, to_norm, amount),
            )
            self._balances[asset_norm] += amount
            self._publish(asset_norm)
        self._log("safe.lock", asset_norm, amount, owner=owner_norm, to=to_norm)

    def release(self, asset: str, to: str, amount: int) -> None:
        """
        Transfer custodied ``amount`` to ``to``.

        Raises:
            InsufficientCustodyError: If amount exceeds the custodied balance
            ExternalAssetCallError: If the asset transfer fails
        """
        asset_norm, amount = self._prepare(asset, amount)
        to_norm = normalize_address(to)
        with self._asset_lock(asset_norm):
            available = self._balances.get(asset_norm, 0)
            if amount > available:
                raise InsufficientCustodyError(
                    f"Release of {amount} exceeds custodied balance {available} for {asset_norm}",
                    requested=amount,
                    available=available,
                    details={"asset": asset_norm},
                )
            self._call(
                asset_norm,
                "transfer",
                lambda token: token.transfer(self.custody_account, to_norm, amount),
            )
            self._balances[asset_norm] = available - amount
            self._publish(asset_norm)
        self._log("safe.release", asset_norm, amount, to=to_norm)

    def mint(self, asset: str, to: str, amount: int) -> None:
        """Issue ``amount`` of ``asset`` to ``to``; custody balance is not touched."""
        asset_norm, amount = self._prepare(asset, amount)
        to_norm = normalize_address(to)
        with self._asset_lock(asset_norm):
            self._call(
                asset_norm,
                "mint",
                lambda token: token.mint(self.custody_account, to_norm, amount),
            )
            self._minted[asset_norm] += amount
        self._log("safe.mint", asset_norm, amount, to=to_norm)

    def burn(self, asset: str, owner: str, amount: int) -> None:
        """Destroy ``amount`` of ``owner``'s holdings using the custody allowance."""
        asset_norm, amount = self._prepare(asset, amount)
        owner_norm = normalize_address(owner)
        with self._asset_lock(asset_norm):
            self._call(
                asset_norm,
                "burn_from",
                lambda token: token.burn_from(self.custody_account, owner_norm, amount),
            )
            self._burned[asset_norm] += amount
            self._publish(asset_norm)
        self._log("safe.burn", asset_norm, amount, owner=owner_norm)

    # ==================== Helpers ====================

    def _prepare(self, asset: str, amount: int) -> tuple[str, int]:
        asset_norm = normalize_address(asset)
        if asset_norm == ZERO_ADDRESS:
            raise ValueError("Asset cannot be the zero address.")
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise ValueError("Amount must be an integer.")
        if amount < 0 or amount > UINT256_MAX:
            raise ValueError(f"Amount out of uint256 range: {amount}")
        return asset_norm, amount

    def _asset_lock(self, asset_norm: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._asset_locks.get(asset_norm)
            if lock is None:
                lock = threading.Lock()
                self._asset_locks[asset_norm] = lock
            return lock

    def _call(self, asset_norm: str, operation: str, invoke: Callable[[AssetContract], Any]) -> None:
        token = self.assets.get_token(asset_norm)
        if token is None:
            raise ExternalAssetCallError(
                f"No asset contract deployed at {asset_norm}",
                operation=operation,
                details={"asset": asset_norm},
            )
        try:
            result = invoke(token)
        except Exception as exc:
            raise ExternalAssetCallError(
                f"Asset call {operation} on {asset_norm} failed: {exc}",
                operation=operation,
                details={"asset": asset_norm},
            ) from exc
        if result is not True:
            raise ExternalAssetCallError(
                f"Asset call {operation} on {asset_norm} returned ambiguous result {result!r}",
                operation=operation,
                details={"asset": asset_norm},
            )

    def _publish(self, asset_norm: str) -> None:
        metrics.update_custody_totals(
            asset_norm, self._balances.get(asset_norm, 0), self._burned.get(asset_norm, 0)
        )

    def _log(self, event: str, asset_norm: str, amount: int, **accounts: str) -> None:
        logger.info(
            "Custody %s: %s of %s",
            event.split(".", 1)[1],
            amount,
            asset_norm,
            extra={
                "event": event,
                "asset": asset_norm,
                "amount": amount,
                **{name: value[:10] for name, value in accounts.items()},
            },
        )
