"""
Reference contract implementations.

- ERC20: fungible token standard with minter role and burnFrom
- TokenRegistry: deploys tokens and resolves asset addresses to contracts
"""

from .erc20 import ERC20Token, TokenEvent, TokenRegistry

__all__ = [
    "ERC20Token",
    "TokenEvent",
    "TokenRegistry",
]
