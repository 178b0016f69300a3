"""
Watched pool registry.

Parses the POOLS setting (a JSON array) into validated, immutable
PoolConfig entries.

Example:
    POOLS=[{"address":"0xAbC...","name":"Private Credit USDC","decimals":6}]
"""

from __future__ import annotations

import json
from typing import Any

from shared.types import PoolConfig


class PoolConfigError(ValueError):
    """Raised when the pool list or one of its entries is malformed."""


def parse_pool_entry(entry: Any, index: int) -> PoolConfig:
    """Validate and normalize one {address, name, decimals} entry."""
    if not isinstance(entry, dict):
        raise PoolConfigError(f"POOLS[{index}] must be an object, expected {{address,name,decimals}}")

    address = entry.get("address")
    name = entry.get("name")
    decimals = entry.get("decimals")

    if not isinstance(address, str) or not address.strip():
        raise PoolConfigError(f"POOLS[{index}]: 'address' must be a non-empty string")
    if not isinstance(name, str) or not name.strip():
        raise PoolConfigError(f"POOLS[{index}]: 'name' must be a non-empty string")
    # bool is an int subclass; reject it explicitly
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise PoolConfigError(f"POOLS[{index}]: 'decimals' must be a non-negative integer")

    return PoolConfig(address=address.strip().lower(), name=name.strip(), decimals=decimals)


def parse_pools(raw: str) -> tuple[PoolConfig, ...]:
    """
    Parse the POOLS JSON string.

    An empty string means "no pools" and is not an error.

    Raises:
        PoolConfigError: invalid JSON, non-array value or a bad entry.
    """
    if not raw or not raw.strip():
        return ()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PoolConfigError(f"Failed to parse POOLS JSON: {e}") from e
    if not isinstance(parsed, list):
        raise PoolConfigError("POOLS must be a JSON array")
    return tuple(parse_pool_entry(entry, idx) for idx, entry in enumerate(parsed))
