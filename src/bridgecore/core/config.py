"""
bridgecore Configuration

Environment-driven settings plus the construction-time handler setup
(resource bindings and burnable assets) loaded from YAML or JSON.

Environment variables:
- BRIDGE_NETWORK: testnet or mainnet (default testnet)
- BRIDGE_LOG_LEVEL / BRIDGE_LOG_FILE / BRIDGE_LOG_ENVIRONMENT
- BRIDGE_NATIVE_ADDRESS_WIDTH: recipient address width in bytes (only 20 is supported)
- BRIDGE_EVENT_LOG_LIMIT: most recent handler events kept in memory (default 10000)
- BRIDGE_METRICS_ENABLED: "1" to record prometheus metrics (default 1)
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from bridgecore.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_ADDRESS_WIDTH = 20

_HEX_RESOURCE_ID = re.compile(r"[0-9a-fA-F]{64}")


def _int_setting(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _check_address_width(width: int) -> int:
    if width != SUPPORTED_ADDRESS_WIDTH:
        raise ConfigurationError(
            f"BRIDGE_NATIVE_ADDRESS_WIDTH must be {SUPPORTED_ADDRESS_WIDTH}, got {width}"
        )
    return width


def _check_event_log_limit(limit: int) -> int:
    if limit <= 0:
        raise ConfigurationError(f"BRIDGE_EVENT_LOG_LIMIT must be positive, got {limit}")
    return limit


NETWORK = os.getenv("BRIDGE_NETWORK", "testnet")  # Default to testnet for safety

LOG_LEVEL = os.getenv("BRIDGE_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.getenv("BRIDGE_LOG_FILE", "").strip()
LOG_ENVIRONMENT = os.getenv("BRIDGE_LOG_ENVIRONMENT", NETWORK)

NATIVE_ADDRESS_WIDTH = _check_address_width(
    _int_setting("BRIDGE_NATIVE_ADDRESS_WIDTH", str(SUPPORTED_ADDRESS_WIDTH))
)
EVENT_LOG_LIMIT = _check_event_log_limit(_int_setting("BRIDGE_EVENT_LOG_LIMIT", "10000"))
METRICS_ENABLED = os.getenv("BRIDGE_METRICS_ENABLED", "1").strip() == "1"


class HandlerSetup(BaseModel):
    """Construction-time configuration for an ERC20 handler."""

    bridge_address: str = Field(min_length=1)
    custody_address: str = Field(min_length=1)
    resource_ids: list[str] = Field(default_factory=list)
    asset_addresses: list[str] = Field(default_factory=list)
    burnable_assets: list[str] = Field(default_factory=list)

    @field_validator("resource_ids")
    @classmethod
    def _check_resource_ids(cls, values: list[str]) -> list[str]:
        for value in values:
            hex_part = value[2:] if value[:2].lower() == "0x" else value
            if not _HEX_RESOURCE_ID.fullmatch(hex_part):
                raise ValueError(f"resource id must be 32 bytes of hex: {value}")
        return values

    @model_validator(mode="after")
    def _check_lengths(self) -> "HandlerSetup":
        if len(self.resource_ids) != len(self.asset_addresses):
            raise ValueError(
                f"resource_ids and asset_addresses length mismatch "
                f"({len(self.resource_ids)} != {len(self.asset_addresses)})"
            )
        return self


def parse_handler_setup(data: dict[str, Any]) -> HandlerSetup:
    """Validate a raw mapping into a HandlerSetup, raising ConfigurationError."""
    try:
        return HandlerSetup(**data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid handler setup: {exc.error_count()} error(s)",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc


def load_handler_setup(path: str | Path) -> HandlerSetup:
    """
    Load handler setup from a YAML or JSON file.

    Args:
        path: File path; ``.json`` is parsed as JSON, anything else as YAML

    Returns:
        Validated HandlerSetup

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Handler setup file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            if config_path.suffix == ".json":
                data = json.load(handle)
            else:
                data = yaml.safe_load(handle)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not read handler setup {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Handler setup {config_path} must be a mapping")

    setup = parse_handler_setup(data)
    logger.info(
        "Loaded handler setup",
        extra={
            "event": "config.handler_setup_loaded",
            "path": str(config_path),
            "resources": len(setup.resource_ids),
            "burnable": len(setup.burnable_assets),
        },
    )
    return setup
