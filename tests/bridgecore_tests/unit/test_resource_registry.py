import pytest

from bridgecore.bridge.resource_registry import AssetKind, ResourceID, ResourceRegistry
from bridgecore.core.address import ZERO_ADDRESS
from bridgecore.core.exceptions import ResourceConflictError

ASSET_A = "0x" + "aa" * 20
ASSET_B = "0x" + "bb" * 20


def test_resource_id_for_asset_layout():
    rid = ResourceID.for_asset(ASSET_A, 1)
    assert rid.value == b"\x00" * 11 + bytes.fromhex("aa" * 20) + b"\x01"
    assert ResourceID.from_hex(rid.hex()) == rid


def test_resource_id_rejects_wrong_length():
    with pytest.raises(ValueError):
        ResourceID(b"\x01" * 31)
    with pytest.raises(ValueError):
        ResourceID.from_hex("0xzz")


@pytest.mark.parametrize("hex_value", ["0x" + "11 " * 32, "0x" + "1" * 63 + "_", "0x" + "1" * 63])
def test_resource_id_from_hex_accepts_only_hex_digits(hex_value):
    with pytest.raises(ValueError):
        ResourceID.from_hex(hex_value)


def test_register_and_resolve(resource_registry):
    rid = ResourceID.for_asset(ASSET_A, 3)
    resource_registry.register(rid, ASSET_A.upper().replace("0X", "0x"))

    assert resource_registry.resolve(rid) == ASSET_A
    assert resource_registry.resolve(rid.hex()) == ASSET_A
    assert resource_registry.resource_id_of(ASSET_A) == rid
    assert len(resource_registry) == 1


def test_unregistered_resource_resolves_to_zero_address(resource_registry):
    rid = ResourceID(b"\x07" * 32)
    assert resource_registry.resolve(rid) == ZERO_ADDRESS
    assert resource_registry.is_whitelisted(resource_registry.resolve(rid)) is False


def test_register_is_last_write_wins_for_resource(resource_registry):
    rid = ResourceID(b"\x01" * 32)
    resource_registry.register(rid, ASSET_A)
    resource_registry.register(rid, ASSET_B)

    assert resource_registry.resolve(rid) == ASSET_B
    assert resource_registry.resource_id_of(ASSET_A) is None
    assert resource_registry.resource_id_of(ASSET_B) == rid


def test_asset_cannot_be_bound_to_two_resources(resource_registry):
    resource_registry.register(ResourceID(b"\x01" * 32), ASSET_A)
    with pytest.raises(ResourceConflictError):
        resource_registry.register(ResourceID(b"\x02" * 32), ASSET_A)
    assert resource_registry.resolve(ResourceID(b"\x02" * 32)) == ZERO_ADDRESS


def test_register_rejects_zero_address(resource_registry):
    with pytest.raises(ValueError):
        resource_registry.register(ResourceID(b"\x01" * 32), ZERO_ADDRESS)


def test_whitelist_toggle(resource_registry):
    resource_registry.register(ResourceID(b"\x01" * 32), ASSET_A)
    assert resource_registry.is_whitelisted(ASSET_A) is False

    resource_registry.set_whitelisted(ASSET_A, True)
    assert resource_registry.is_whitelisted(ASSET_A) is True

    resource_registry.set_whitelisted(ASSET_A, False)
    assert resource_registry.is_whitelisted(ASSET_A) is False


def test_set_burnable_is_idempotent_and_keeps_whitelist(resource_registry):
    resource_registry.set_whitelisted(ASSET_A, True)
    assert resource_registry.entry(ASSET_A).kind is AssetKind.CUSTODIED

    resource_registry.set_burnable(ASSET_A)
    resource_registry.set_burnable(ASSET_A)

    entry = resource_registry.entry(ASSET_A)
    assert entry.kind is AssetKind.BURNABLE
    assert entry.is_burnable
    assert entry.whitelisted is True

    # Toggling the whitelist never resets the asset kind
    resource_registry.set_whitelisted(ASSET_A, False)
    assert resource_registry.is_burnable(ASSET_A) is True
