import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the src directory is importable before collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))

from bridgecore.bridge.handler import ERC20Handler
from bridgecore.bridge.resource_registry import ResourceID, ResourceRegistry
from bridgecore.bridge.safe import Safe
from bridgecore.contracts.erc20 import TokenRegistry

ADMIN = "0x" + "a0" * 20
BRIDGE = "0x" + "b1" * 20
CUSTODY = "0x" + "c0" * 20
DEPOSITOR = "0x" + "d0" * 20
RECIPIENT = "0x" + "ee" * 20
OUTSIDER = "0x" + "0f" * 20

BURNABLE_ASSET = "0x" + "a1" * 20
CUSTODIED_ASSET = "0x" + "a2" * 20

R1 = ResourceID.for_asset(BURNABLE_ASSET, 1)
R2 = ResourceID.for_asset(CUSTODIED_ASSET, 1)

STARTING_BALANCE = 1_000


@pytest.fixture
def tokens():
    """Token registry with one burnable and one custodied asset funded to DEPOSITOR."""
    registry = TokenRegistry()
    burnable = registry.create_token(
        ADMIN, "Wrapped Ether", "WETH", initial_supply=STARTING_BALANCE,
        mint_to=DEPOSITOR, address=BURNABLE_ASSET,
    )
    burnable.add_minter(ADMIN, CUSTODY)
    custodied = registry.create_token(
        ADMIN, "Stable Dollar", "USDS", initial_supply=STARTING_BALANCE,
        mint_to=DEPOSITOR, address=CUSTODIED_ASSET,
    )
    burnable.approve(DEPOSITOR, CUSTODY, STARTING_BALANCE)
    custodied.approve(DEPOSITOR, CUSTODY, STARTING_BALANCE)
    return registry


@pytest.fixture
def safe(tokens):
    return Safe(CUSTODY, tokens)


@pytest.fixture
def handler(safe):
    """Handler with R1 -> burnable asset and R2 -> custodied asset."""
    return ERC20Handler(
        BRIDGE,
        safe,
        initial_resource_ids=[R1, R2],
        initial_asset_addresses=[BURNABLE_ASSET, CUSTODIED_ASSET],
        burnable_assets=[BURNABLE_ASSET],
    )


@pytest.fixture
def resource_registry():
    return ResourceRegistry()


@pytest.fixture
def accounts():
    return SimpleNamespace(
        admin=ADMIN,
        bridge=BRIDGE,
        custody=CUSTODY,
        depositor=DEPOSITOR,
        recipient=RECIPIENT,
        outsider=OUTSIDER,
        burnable_asset=BURNABLE_ASSET,
        custodied_asset=CUSTODIED_ASSET,
        r1=R1,
        r2=R2,
        starting_balance=STARTING_BALANCE,
    )
