"""
Unit tests for the ERC20 bridge handler.

Coverage targets:
- Burnable and custodied deposit/execution scenarios
- Authorization gate precedes decoding and ledger access
- Unknown or unwhitelisted resources produce no record and no ledger change
- Deposit records round-trip and are never overwritten
- Malformed arguments are rejected as InvalidArgumentError and counted
- The event log is bounded
"""

import pytest
from prometheus_client import REGISTRY

from bridgecore.bridge.handler import ERC20Handler
from bridgecore.bridge.resource_registry import ResourceID
from bridgecore.bridge.transfer_codec import encode_deposit, encode_execution
from bridgecore.core import config
from bridgecore.core.config import parse_handler_setup
from bridgecore.core.exceptions import (
    AssetNotWhitelistedError,
    ConfigurationError,
    DuplicateDepositError,
    ExternalAssetCallError,
    InsufficientCustodyError,
    InvalidArgumentError,
    MalformedPayloadError,
    UnauthorizedCallerError,
    UnknownOrUnwhitelistedAssetError,
)


def test_burnable_deposit_burns_and_records(handler, safe, tokens, accounts):
    handler.deposit(accounts.bridge, accounts.r1, 5, 1, accounts.depositor, encode_deposit(100))

    token = tokens.get_token(accounts.burnable_asset)
    assert token.balance_of(accounts.depositor) == accounts.starting_balance - 100
    assert safe.burned_of(accounts.burnable_asset) == 100
    assert safe.balance_of(accounts.burnable_asset) == 0

    record = handler.get_deposit_record(5, 1)
    assert record.asset_address == accounts.burnable_asset
    assert record.amount == 100
    assert record.resource_id == accounts.r1


def test_custodied_deposit_then_execution_releases(handler, safe, tokens, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 2, accounts.depositor, encode_deposit(50))
    assert safe.balance_of(accounts.custodied_asset) == 50

    handler.execute_transfer(accounts.bridge, accounts.r2, encode_execution(50, accounts.recipient))

    assert safe.balance_of(accounts.custodied_asset) == 0
    assert tokens.get_token(accounts.custodied_asset).balance_of(accounts.recipient) == 50


def test_burnable_execution_mints_to_recipient(handler, safe, tokens, accounts):
    handler.execute_transfer(accounts.bridge, accounts.r1, encode_execution(40, accounts.recipient))

    assert tokens.get_token(accounts.burnable_asset).balance_of(accounts.recipient) == 40
    assert safe.minted_of(accounts.burnable_asset) == 40
    assert safe.balance_of(accounts.burnable_asset) == 0


def test_deposit_record_round_trip(handler, accounts):
    payload = encode_deposit(321, accounts.recipient)
    handler.deposit(accounts.bridge, accounts.r2, 9, 77, accounts.depositor, payload)

    record = handler.get_deposit_record(9, 77)
    assert record.asset_address == accounts.custodied_asset
    assert record.destination_chain_id == 9
    assert record.resource_id == accounts.r2
    assert record.recipient_address_length == 20
    assert record.recipient_address == bytes.fromhex(accounts.recipient[2:])
    assert record.recipient == accounts.recipient
    assert record.depositor == accounts.depositor
    assert record.amount == 321


def test_missing_record_is_empty(handler):
    record = handler.get_deposit_record(1, 999)
    assert record.is_empty()
    assert record.amount == 0


def test_execution_by_outsider_is_unauthorized(handler, safe, tokens, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 2, accounts.depositor, encode_deposit(50))

    with pytest.raises(UnauthorizedCallerError):
        handler.execute_transfer(accounts.outsider, accounts.r2, encode_execution(50, accounts.outsider))

    assert safe.balance_of(accounts.custodied_asset) == 50
    assert tokens.get_token(accounts.custodied_asset).balance_of(accounts.outsider) == 0


def test_authorization_is_checked_before_decoding(handler, accounts):
    with pytest.raises(UnauthorizedCallerError):
        handler.deposit(accounts.outsider, accounts.r2, 5, 1, accounts.depositor, b"garbage")
    with pytest.raises(UnauthorizedCallerError):
        handler.withdraw("not-an-address", accounts.custodied_asset, accounts.recipient, 1)


def test_deposit_for_unregistered_resource_fails_cleanly(handler, safe, accounts):
    unknown = ResourceID(b"\x42" * 32)
    with pytest.raises(UnknownOrUnwhitelistedAssetError):
        handler.deposit(accounts.bridge, unknown, 5, 1, accounts.depositor, encode_deposit(10))

    assert handler.get_deposit_record(5, 1).is_empty()
    assert safe.balance_of(accounts.custodied_asset) == 0
    assert len(handler.events) == 0


def test_deposit_for_unwhitelisted_asset_fails_cleanly(handler, safe, accounts):
    handler.set_whitelisted(accounts.bridge, accounts.custodied_asset, False)

    with pytest.raises(AssetNotWhitelistedError):
        handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(10))
    with pytest.raises(UnknownOrUnwhitelistedAssetError):
        handler.execute_transfer(accounts.bridge, accounts.r2, encode_execution(10, accounts.recipient))

    assert handler.get_deposit_record(5, 1).is_empty()
    assert safe.balance_of(accounts.custodied_asset) == 0


def test_malformed_payload_rejected_before_ledger(handler, safe, accounts):
    with pytest.raises(MalformedPayloadError):
        handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, b"\x01" * 10)
    with pytest.raises(MalformedPayloadError):
        handler.execute_transfer(accounts.bridge, accounts.r2, encode_deposit(10))

    assert handler.get_deposit_record(5, 1).is_empty()
    assert safe.balance_of(accounts.custodied_asset) == 0


def test_reused_deposit_key_is_rejected_before_value_moves(handler, safe, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(10))

    with pytest.raises(DuplicateDepositError):
        handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(99))

    assert safe.balance_of(accounts.custodied_asset) == 10
    assert handler.get_deposit_record(5, 1).amount == 10


def test_failed_lock_leaves_no_record(handler, safe, accounts):
    too_much = accounts.starting_balance + 1
    with pytest.raises(ExternalAssetCallError):
        handler.deposit(accounts.bridge, accounts.r2, 5, 3, accounts.depositor, encode_deposit(too_much))

    assert handler.get_deposit_record(5, 3).is_empty()
    assert safe.balance_of(accounts.custodied_asset) == 0


def test_execution_beyond_custody_fails(handler, safe, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(10))

    with pytest.raises(InsufficientCustodyError):
        handler.execute_transfer(accounts.bridge, accounts.r2, encode_execution(11, accounts.recipient))
    assert safe.balance_of(accounts.custodied_asset) == 10


def test_withdraw_releases_without_record(handler, safe, tokens, accounts):
    handler.fund_custody(accounts.bridge, accounts.custodied_asset, accounts.depositor, 80)
    handler.withdraw(accounts.bridge, accounts.custodied_asset, accounts.recipient, 30)

    assert safe.balance_of(accounts.custodied_asset) == 50
    assert tokens.get_token(accounts.custodied_asset).balance_of(accounts.recipient) == 30
    assert handler.events[-1].event_type == "Withdraw"

    with pytest.raises(InsufficientCustodyError):
        handler.withdraw(accounts.bridge, accounts.custodied_asset, accounts.recipient, 51)


def test_events_track_accepted_calls(handler, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(10))
    handler.execute_transfer(accounts.bridge, accounts.r2, encode_execution(10, accounts.recipient))

    assert [event.event_type for event in handler.events] == ["Deposit", "Execution"]
    assert handler.events[0].deposit_nonce == 1
    assert handler.events[1].account == accounts.recipient


def test_admin_pass_throughs_are_gated(handler, accounts):
    new_asset = "0x" + "a3" * 20
    rid = ResourceID.for_asset(new_asset, 1)

    with pytest.raises(UnauthorizedCallerError):
        handler.set_resource(accounts.outsider, rid, new_asset)
    with pytest.raises(UnauthorizedCallerError):
        handler.set_burnable(accounts.outsider, new_asset)
    with pytest.raises(UnauthorizedCallerError):
        handler.fund_custody(accounts.outsider, accounts.custodied_asset, accounts.depositor, 1)

    handler.set_resource(accounts.bridge, rid, new_asset)
    handler.set_burnable(accounts.bridge, new_asset)
    assert handler.registry.resolve(rid) == new_asset
    assert handler.registry.is_whitelisted(new_asset)
    assert handler.registry.is_burnable(new_asset)


def test_rejections_are_counted(handler, accounts):
    before = REGISTRY.get_sample_value(
        "bridge_rejected_calls_total",
        {"operation": "execute_transfer", "error": "UnauthorizedCallerError"},
    ) or 0.0

    with pytest.raises(UnauthorizedCallerError):
        handler.execute_transfer(accounts.outsider, accounts.r2, encode_execution(1, accounts.recipient))

    after = REGISTRY.get_sample_value(
        "bridge_rejected_calls_total",
        {"operation": "execute_transfer", "error": "UnauthorizedCallerError"},
    )
    assert after == before + 1


def _rejections(operation, error):
    return REGISTRY.get_sample_value(
        "bridge_rejected_calls_total", {"operation": operation, "error": error}
    ) or 0.0


@pytest.mark.parametrize("depositor", ["0x1234", "0x" + "d0" * 19 + "_0", None])
def test_malformed_depositor_is_rejected_and_counted(handler, safe, accounts, depositor):
    before = _rejections("deposit", "InvalidArgumentError")

    with pytest.raises(InvalidArgumentError):
        handler.deposit(accounts.bridge, accounts.r2, 5, 1, depositor, encode_deposit(10))

    assert _rejections("deposit", "InvalidArgumentError") == before + 1
    assert handler.get_deposit_record(5, 1).is_empty()
    assert safe.balance_of(accounts.custodied_asset) == 0
    assert len(handler.events) == 0


def test_malformed_resource_id_is_rejected_and_counted(handler, accounts):
    before = _rejections("execute_transfer", "InvalidArgumentError")

    with pytest.raises(InvalidArgumentError):
        handler.execute_transfer(accounts.bridge, b"\x01" * 31, encode_execution(1, accounts.recipient))
    with pytest.raises(InvalidArgumentError):
        handler.deposit(accounts.bridge, "0x" + "1 " * 32, 5, 1, accounts.depositor, encode_deposit(1))

    assert _rejections("execute_transfer", "InvalidArgumentError") == before + 1


@pytest.mark.parametrize(
    "asset, amount",
    [
        ("not-an-address", 1),
        ("0x" + "00" * 20, 1),
        ("0x" + "a2" * 20, -1),
        ("0x" + "a2" * 20, 1.5),
        ("0x" + "a2" * 20, True),
        ("0x" + "a2" * 20, 2**256),
    ],
)
def test_withdraw_with_bad_arguments_is_rejected_and_counted(handler, safe, accounts, asset, amount):
    handler.fund_custody(accounts.bridge, accounts.custodied_asset, accounts.depositor, 10)
    before = _rejections("withdraw", "InvalidArgumentError")

    with pytest.raises(InvalidArgumentError):
        handler.withdraw(accounts.bridge, asset, accounts.recipient, amount)

    assert _rejections("withdraw", "InvalidArgumentError") == before + 1
    assert safe.balance_of(accounts.custodied_asset) == 10


def test_withdraw_with_bad_recipient_is_rejected(handler, safe, accounts):
    handler.fund_custody(accounts.bridge, accounts.custodied_asset, accounts.depositor, 10)

    with pytest.raises(InvalidArgumentError):
        handler.withdraw(accounts.bridge, accounts.custodied_asset, "0x+" + "1" * 39, 1)
    assert safe.balance_of(accounts.custodied_asset) == 10


@pytest.mark.parametrize(
    "chain_id, nonce",
    [(5, True), (True, 1), (5, -1), (-5, 1), (5, "1"), (5.0, 1), (5, None)],
)
def test_deposit_key_must_be_plain_unsigned_integers(handler, safe, accounts, chain_id, nonce):
    with pytest.raises(InvalidArgumentError):
        handler.deposit(accounts.bridge, accounts.r2, chain_id, nonce, accounts.depositor, encode_deposit(10))

    assert handler.get_deposit_record(5, 1).is_empty()
    assert len(handler.store) == 0
    assert safe.balance_of(accounts.custodied_asset) == 0


def test_boolean_nonce_cannot_shadow_an_integer_key(handler, accounts):
    handler.deposit(accounts.bridge, accounts.r2, 5, 1, accounts.depositor, encode_deposit(10))

    with pytest.raises(InvalidArgumentError):
        handler.deposit(accounts.bridge, accounts.r2, 5, True, accounts.depositor, encode_deposit(10))
    assert handler.get_deposit_record(5, 1).amount == 10


def test_event_log_keeps_only_the_most_recent_events(safe, accounts):
    handler = ERC20Handler(
        accounts.bridge,
        safe,
        initial_resource_ids=[accounts.r2],
        initial_asset_addresses=[accounts.custodied_asset],
        event_log_limit=2,
    )
    for nonce in range(1, 5):
        handler.deposit(accounts.bridge, accounts.r2, 5, nonce, accounts.depositor, encode_deposit(1))

    assert [event.deposit_nonce for event in handler.events] == [3, 4]
    assert len(handler.store) == 4


def test_default_event_log_limit_comes_from_config(handler, monkeypatch, safe, accounts):
    assert handler.events.maxlen == config.EVENT_LOG_LIMIT

    monkeypatch.setattr(config, "EVENT_LOG_LIMIT", 3)
    assert ERC20Handler(accounts.bridge, safe).events.maxlen == 3


@pytest.mark.parametrize("limit", [0, -1, True, 2.5])
def test_event_log_limit_must_be_positive_integer(safe, accounts, limit):
    with pytest.raises(ConfigurationError):
        ERC20Handler(accounts.bridge, safe, event_log_limit=limit)


def test_construction_requires_matching_lengths(safe, accounts):
    with pytest.raises(ConfigurationError):
        ERC20Handler(
            accounts.bridge,
            safe,
            initial_resource_ids=[accounts.r1, accounts.r2],
            initial_asset_addresses=[accounts.burnable_asset],
        )


def test_construction_rejects_duplicate_assets(safe, accounts):
    with pytest.raises(ConfigurationError):
        ERC20Handler(
            accounts.bridge,
            safe,
            initial_resource_ids=[accounts.r1, accounts.r2],
            initial_asset_addresses=[accounts.burnable_asset, accounts.burnable_asset],
        )


def test_construction_rejects_zero_bridge(safe):
    with pytest.raises(ConfigurationError):
        ERC20Handler("0x" + "00" * 20, safe)


def test_from_setup_builds_routable_handler(safe, tokens, accounts):
    setup = parse_handler_setup(
        {
            "bridge_address": accounts.bridge,
            "custody_address": accounts.custody,
            "resource_ids": [accounts.r1.hex(), accounts.r2.hex()],
            "asset_addresses": [accounts.burnable_asset, accounts.custodied_asset],
            "burnable_assets": [accounts.burnable_asset],
        }
    )
    handler = ERC20Handler.from_setup(setup, safe)

    handler.deposit(accounts.bridge, accounts.r1, 2, 1, accounts.depositor, encode_deposit(5))
    assert safe.burned_of(accounts.burnable_asset) == 5


def test_from_setup_rejects_mismatched_custody(safe, accounts):
    setup = parse_handler_setup(
        {"bridge_address": accounts.bridge, "custody_address": accounts.outsider}
    )
    with pytest.raises(ConfigurationError):
        ERC20Handler.from_setup(setup, safe)
