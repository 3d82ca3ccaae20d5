"""
Wire encoders for broker messages.

Text frames carry JSON, binary frames carry the same object encoded with
MessagePack. Both decoders enforce size limits and require a top-level
object.
"""

import json
from enum import StrEnum
from typing import Any

import msgpack


class Framing(StrEnum):
    TEXT = "text"
    BINARY = "binary"


class DecodeError(Exception):
    """Error raised when an inbound frame cannot be decoded."""


# Size limits to prevent resource exhaustion from malicious payloads.
# Game-state snapshots are opaque client blobs, so the per-string and
# per-container limits are generous.
MAX_BUFFER_LEN = 256 * 1024  # 256KB total payload
MAX_STR_LEN = 128 * 1024  # 128KB per string
MAX_BIN_LEN = 64 * 1024  # 64KB per binary
MAX_ARRAY_LEN = 4096  # max array elements
MAX_MAP_LEN = 1024  # max map entries
MAX_EXT_LEN = 1024  # max extension data


def _stringify_keys(obj: object) -> object:
    """
    Recursively convert integer dict keys to strings.

    Opaque game-state blobs may carry integer keys, which neither JSON
    objects nor MessagePack strict maps can round-trip.
    """
    if isinstance(obj, dict):
        return {str(k) if isinstance(k, int) else k: _stringify_keys(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_stringify_keys(item) for item in obj]
    return obj


def _is_json_value(obj: object) -> bool:
    """Whether a decoded MessagePack value has a JSON equivalent (no bin or ext data)."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return True
    if isinstance(obj, dict):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in obj.items())
    if isinstance(obj, list):
        return all(_is_json_value(item) for item in obj)
    return False


def encode(data: dict[str, Any]) -> bytes:
    """
    Encode a dict to MessagePack bytes.
    """
    return msgpack.packb(_stringify_keys(data))


def encode_text(data: dict[str, Any]) -> str:
    """
    Encode a dict to a compact JSON string.
    """
    return json.dumps(_stringify_keys(data), ensure_ascii=False, separators=(",", ":"))


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

    Raises DecodeError if data is invalid, not a dict, exceeds size limits,
    or carries binary or extension values. Every payload is relayed or mirrored to
    clients that may be on JSON framing, so only JSON-representable values
    are accepted.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected object, got {type(result).__name__}")
    if not _is_json_value(result):
        raise DecodeError("binary and extension values are not supported")

    return result


def decode_text(data: str) -> dict[str, Any]:
    """
    Decode a JSON text frame to a dict.

    Raises DecodeError if data is invalid, not an object, or too large.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} characters (max {MAX_BUFFER_LEN})")
    try:
        result = json.loads(data)
    except ValueError as e:
        raise DecodeError(f"failed to decode JSON data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected object, got {type(result).__name__}")

    return result


def decode_frame(data: str | bytes) -> tuple[dict[str, Any], Framing]:
    """Decode either frame kind and report which one it was."""
    if isinstance(data, bytes):
        return decode(data), Framing.BINARY
    return decode_text(data), Framing.TEXT
