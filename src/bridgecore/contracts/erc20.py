"""
Reference ERC20 Token Implementation.

In-process fungible asset contract the custody core calls into. It models
the subset of EIP-20 a bridge handler relies on:
- Basic token operations (transfer, approve, transferFrom)
- Minter role with mint (ERC20PresetMinterPauser style)
- Burning from own balance and from an allowance (burnFrom)
- Events (Transfer, Approval)

Every state-changing call returns True on success and raises
AssetContractError otherwise; callers must treat anything else as failure.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from bridgecore.core.address import ZERO_ADDRESS, normalize_address
from bridgecore.core.exceptions import AssetContractError

logger = logging.getLogger(__name__)

# ERC20 Function selectors (first 4 bytes of keccak256 hash of function signature)
ERC20_SELECTORS = {
    "totalSupply()": "18160ddd",
    "balanceOf(address)": "70a08231",
    "transfer(address,uint256)": "a9059cbb",
    "allowance(address,address)": "dd62ed3e",
    "approve(address,uint256)": "095ea7b3",
    "transferFrom(address,address,uint256)": "23b872dd",
    "mint(address,uint256)": "40c10f19",
    "burn(uint256)": "42966c68",
    "burnFrom(address,uint256)": "79cc6790",
}

UINT256_MAX = 2**256 - 1


@dataclass
class TokenEvent:
    """Represents an ERC20 event."""

    event_type: str  # "Transfer" or "Approval"
    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ERC20Token:
    """
    Mintable, burnable ERC20 token.

    The owner may grant the minter role; a bridge custody account holding
    that role can issue tokens on the burn/mint path. Balances and
    allowances are plain in-memory maps keyed by lowercase address.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0

    address: str = ""
    owner: str = ""

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    minters: set[str] = field(default_factory=set)
    events: list[TokenEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            # Generate address from name/symbol hash
            addr_input = f"{self.name}{self.symbol}{time.time()}".encode()
            addr_hash = hashlib.sha3_256(addr_input).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = normalize_address(self.address)
        if self.owner:
            self.owner = normalize_address(self.owner)
            self.minters.add(self.owner)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        return self.allowances.get(owner_norm, {}).get(spender_norm, 0)

    def is_minter(self, account: str) -> bool:
        return normalize_address(account) in self.minters

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (msg.sender)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            AssetContractError: If transfer fails
        """
        sender_norm = normalize_address(sender)
        recipient_norm = normalize_address(recipient)
        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        self._move(sender_norm, recipient_norm, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": sender_norm[:10],
                "to": recipient_norm[:10],
                "amount": amount,
            }
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        owner_norm = normalize_address(owner)
        spender_norm = normalize_address(spender)
        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner_norm, spender_norm, amount)
        return True

    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing transfer (msg.sender)
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            AssetContractError: If allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        to_norm = normalize_address(to_addr)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        self._spend_allowance(from_norm, spender_norm, amount, "transfer")
        self._move(from_norm, to_norm, amount)
        return True

    # ==================== Minting & Burning ====================

    def add_minter(self, caller: str, account: str) -> bool:
        """Grant the minter role (owner only)."""
        self._require_owner(caller)
        self.minters.add(normalize_address(account))
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (minter role only).

        Raises:
            AssetContractError: If caller lacks the minter role or amount is invalid
        """
        if not self.is_minter(minter):
            raise AssetContractError("ERC20: caller is not a minter")

        to_norm = normalize_address(to)
        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)
        if self.total_supply + amount > UINT256_MAX:
            raise AssetContractError("ERC20: mint would overflow total supply")

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", ZERO_ADDRESS, to_norm, amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )
        return True

    def burn(self, holder: str, amount: int) -> bool:
        """Burn tokens from holder's own balance."""
        holder_norm = normalize_address(holder)
        self._validate_amount(amount)
        self._destroy(holder_norm, amount)
        return True

    def burn_from(self, spender: str, from_addr: str, amount: int) -> bool:
        """
        Burn tokens from a holder using the spender's allowance.

        Raises:
            AssetContractError: If allowance or balance is insufficient
        """
        spender_norm = normalize_address(spender)
        from_norm = normalize_address(from_addr)
        self._validate_amount(amount)

        self._spend_allowance(from_norm, spender_norm, amount, "burn")
        self._destroy(from_norm, amount)

        logger.info(
            "ERC20 burn",
            extra={
                "event": "erc20.burn",
                "token": self.symbol,
                "from": from_norm[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            }
        )
        return True

    # ==================== Helpers ====================

    def _move(self, from_norm: str, to_norm: str, amount: int) -> None:
        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise AssetContractError(
                f"ERC20: transfer amount exceeds balance ({amount} > {from_balance})"
            )
        self.balances[from_norm] = from_balance - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", from_norm, to_norm, amount)

    def _destroy(self, holder_norm: str, amount: int) -> None:
        balance = self.balances.get(holder_norm, 0)
        if balance < amount:
            raise AssetContractError(
                f"ERC20: burn amount exceeds balance ({amount} > {balance})"
            )
        self.balances[holder_norm] = balance - amount
        self.total_supply -= amount
        self._emit("Transfer", holder_norm, ZERO_ADDRESS, amount)

    def _spend_allowance(self, owner_norm: str, spender_norm: str, amount: int, action: str) -> None:
        current = self.allowances.get(owner_norm, {}).get(spender_norm, 0)
        if current < amount:
            raise AssetContractError(
                f"ERC20: {action} amount exceeds allowance ({amount} > {current})"
            )
        if current != UINT256_MAX:
            self.allowances[owner_norm][spender_norm] = current - amount

    def _validate_address(self, address: str, field_name: str) -> None:
        if address == ZERO_ADDRESS:
            raise AssetContractError(f"ERC20: {field_name} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise AssetContractError("ERC20: amount must be an integer")
        if amount < 0:
            raise AssetContractError("ERC20: amount cannot be negative")
        if amount > UINT256_MAX:
            raise AssetContractError("ERC20: amount exceeds uint256")

    def _require_owner(self, caller: str) -> None:
        if not self.owner or normalize_address(caller) != self.owner:
            raise AssetContractError("ERC20: caller is not owner")

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=from_addr,
                to_address=to_addr,
                value=amount,
            )
        )

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self.total_supply,
            "address": self.address,
            "owner": self.owner,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "minters": sorted(self.minters),
        }


class TokenRegistry:
    """
    Deploys reference tokens and resolves asset addresses to contracts.

    The Safe looks up the contract behind an asset address here; anything
    exposing ``get_token(address)`` can stand in for it.
    """

    def __init__(self) -> None:
        self.deployed_tokens: dict[str, ERC20Token] = {}

    def create_token(
        self,
        creator: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        mint_to: str | None = None,
        address: str = "",
    ) -> ERC20Token:
        """
        Create and register a new token.

        Args:
            creator: Address creating the token (becomes owner and first minter)
            name: Token name
            symbol: Token symbol (ticker)
            decimals: Decimal places (default 18)
            initial_supply: Initial supply to mint
            mint_to: Address to mint initial supply to (defaults to creator)
            address: Fixed contract address (generated when empty)

        Raises:
            AssetContractError: If creation fails
        """
        if not name:
            raise AssetContractError("TokenRegistry: name cannot be empty")
        if not symbol:
            raise AssetContractError("TokenRegistry: symbol cannot be empty")
        if decimals < 0 or decimals > 18:
            raise AssetContractError("TokenRegistry: invalid decimals")
        if initial_supply < 0:
            raise AssetContractError("TokenRegistry: invalid initial supply")

        token = ERC20Token(
            name=name,
            symbol=symbol,
            decimals=decimals,
            owner=creator,
            address=address,
        )
        if token.address in self.deployed_tokens:
            raise AssetContractError(f"TokenRegistry: address {token.address} already deployed")

        if initial_supply > 0:
            token.mint(creator, mint_to or creator, initial_supply)

        self.deployed_tokens[token.address] = token

        logger.info(
            "ERC20 token created",
            extra={
                "event": "erc20.created",
                "address": token.address,
                "symbol": symbol,
                "initial_supply": initial_supply,
                "creator": token.owner[:10],
            }
        )
        return token

    def get_token(self, address: str) -> ERC20Token | None:
        try:
            return self.deployed_tokens.get(normalize_address(address))
        except ValueError:
            return None

    def list_tokens(self) -> list[dict[str, Any]]:
        return [
            {
                "address": address,
                "name": token.name,
                "symbol": token.symbol,
                "decimals": token.decimals,
                "total_supply": token.total_supply,
            }
            for address, token in self.deployed_tokens.items()
        ]
