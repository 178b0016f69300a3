"""
Serialization utilities for the vault deposit alert relay.

JSON encoding for decoded event values: HexBytes / raw bytes (bytes32,
hashed indexed topics), 256-bit integers and nested ABI tuples.

Usage:
    from shared.serialization_utils import EventValueEncoder
    json.dumps(values, cls=EventValueEncoder)
"""

from json import JSONEncoder
from typing import Any

from hexbytes import HexBytes


class EventValueEncoder(JSONEncoder):
    """
    JSON encoder for ABI-decoded values.

    Integers beyond the IEEE 754 safe range (2^53 - 1) are emitted as strings
    so uint256 amounts survive any downstream JSON consumer unchanged.
    """

    _MAX_SAFE_INTEGER = 2**53 - 1

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (HexBytes, bytes, bytearray)):
            return "0x" + bytes(obj).hex()
        return super().default(obj)

    def encode(self, obj: Any) -> str:
        """Convert large integers to strings before JSON serialization."""
        return super().encode(self._convert_large_ints(obj))

    def _convert_large_ints(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: self._convert_large_ints(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._convert_large_ints(item) for item in obj]
        elif isinstance(obj, bool):
            return obj
        elif isinstance(obj, int) and (obj > self._MAX_SAFE_INTEGER or obj < -self._MAX_SAFE_INTEGER):
            return str(obj)
        return obj
