"""
Transfer payload encoding and decoding.

Payloads are sequences of 32-byte big-endian words followed by an optional
variable-length tail:

    deposit:    amount (32) [recipient_length (32) recipient (recipient_length)]
    execution:  amount (32) recipient_length (32) recipient (recipient_length)

Every read is bounds-checked against the buffer; malformed input raises
MalformedPayloadError and never reads past the end.
"""

from __future__ import annotations

from dataclasses import dataclass

from bridgecore.core import config
from bridgecore.core.address import address_from_bytes, address_to_bytes
from bridgecore.core.exceptions import ConfigurationError, MalformedPayloadError

WORD_SIZE = 32
UINT256_MAX = 2**256 - 1


def encode_uint256(value: int) -> bytes:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("uint256 value must be an integer")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"uint256 value out of range: {value}")
    return value.to_bytes(WORD_SIZE, "big")


def decode_uint256(data: bytes, offset: int) -> tuple[int, int]:
    """Read one word at ``offset``; returns (value, next offset)."""
    end = offset + WORD_SIZE
    if offset < 0 or end > len(data):
        raise MalformedPayloadError(
            f"Payload too short: need {WORD_SIZE} bytes at offset {offset}, have {max(len(data) - offset, 0)}",
            details={"offset": offset, "length": len(data)},
        )
    return int.from_bytes(data[offset:end], "big"), end


def decode_bytes(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    """Read ``length`` raw bytes at ``offset``; returns (bytes, next offset)."""
    remaining = len(data) - offset
    if offset < 0 or length > remaining:
        raise MalformedPayloadError(
            f"Declared length {length} overruns payload ({remaining} bytes remaining)",
            details={"offset": offset, "declared": length, "remaining": remaining},
        )
    end = offset + length
    return bytes(data[offset:end]), end


@dataclass(frozen=True)
class DepositPayload:
    amount: int
    recipient_length: int = 0
    recipient_bytes: bytes = b""


@dataclass(frozen=True)
class ExecutionPayload:
    amount: int
    recipient_length: int
    recipient_bytes: bytes
    address_width: int = 20

    @property
    def recipient(self) -> str:
        """Destination account: the first native-width bytes of the tail."""
        return address_from_bytes(self.recipient_bytes[: self.address_width])


class TransferCodec:
    """
    Encoder/decoder for deposit and execution payloads.

    Args:
        address_width: Native recipient address width of the target chain
    """

    def __init__(self, address_width: int | None = None) -> None:
        self.address_width = config.NATIVE_ADDRESS_WIDTH if address_width is None else address_width
        if self.address_width != config.SUPPORTED_ADDRESS_WIDTH:
            # Recipient accounts are 20-byte addresses throughout the custody core
            raise ConfigurationError(f"Unsupported native address width: {self.address_width}")

    # ==================== Encoding ====================

    def encode_deposit(self, amount: int, recipient: bytes | str | None = None) -> bytes:
        payload = encode_uint256(amount)
        if recipient is None:
            return payload
        tail = self._recipient_bytes(recipient)
        return payload + encode_uint256(len(tail)) + tail

    def encode_execution(self, amount: int, recipient: bytes | str) -> bytes:
        tail = self._recipient_bytes(recipient)
        return encode_uint256(amount) + encode_uint256(len(tail)) + tail

    # ==================== Decoding ====================

    def decode_deposit(self, payload: bytes) -> DepositPayload:
        """
        Decode a deposit payload.

        A bare 32-byte amount is accepted; otherwise a recipient length word
        and its tail must follow.

        Raises:
            MalformedPayloadError: If the buffer is truncated or overrun
        """
        data = self._as_bytes(payload)
        amount, offset = decode_uint256(data, 0)
        if offset == len(data):
            return DepositPayload(amount=amount)

        length, offset = decode_uint256(data, offset)
        recipient, _ = decode_bytes(data, offset, length)
        return DepositPayload(amount=amount, recipient_length=length, recipient_bytes=recipient)

    def decode_execution(self, payload: bytes) -> ExecutionPayload:
        """
        Decode an execution payload.

        Raises:
            MalformedPayloadError: If the buffer is truncated, the declared
                recipient length overruns it, or the recipient is shorter
                than the native address width
        """
        data = self._as_bytes(payload)
        amount, offset = decode_uint256(data, 0)
        length, offset = decode_uint256(data, offset)
        recipient, _ = decode_bytes(data, offset, length)

        if length < self.address_width:
            raise MalformedPayloadError(
                f"Recipient is {length} bytes, need at least {self.address_width}",
                details={"declared": length, "address_width": self.address_width},
            )
        return ExecutionPayload(
            amount=amount,
            recipient_length=length,
            recipient_bytes=recipient,
            address_width=self.address_width,
        )

    # ==================== Helpers ====================

    @staticmethod
    def _as_bytes(payload: bytes) -> bytes:
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return bytes(payload)
        raise MalformedPayloadError(f"Payload must be bytes, got {type(payload).__name__}")

    @staticmethod
    def _recipient_bytes(recipient: bytes | str) -> bytes:
        if isinstance(recipient, str):
            return address_to_bytes(recipient)
        return bytes(recipient)


_default_codec: TransferCodec | None = None


def default_codec() -> TransferCodec:
    global _default_codec
    if _default_codec is None:
        _default_codec = TransferCodec()
    return _default_codec


def encode_deposit(amount: int, recipient: bytes | str | None = None) -> bytes:
    return default_codec().encode_deposit(amount, recipient)


def encode_execution(amount: int, recipient: bytes | str) -> bytes:
    return default_codec().encode_execution(amount, recipient)
