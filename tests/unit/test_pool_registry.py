"""
Unit tests for core/pool_registry.py.
"""

from __future__ import annotations

import json

import pytest

from core.pool_registry import PoolConfigError, parse_pool_entry, parse_pools
from shared.types import PoolConfig

ADDRESS = "0xAbC0000000000000000000000000000000000001"


class TestParsePools:
    @pytest.mark.parametrize("raw", ["", "   ", "\n"])
    def test_empty_means_no_pools(self, raw):
        assert parse_pools(raw) == ()

    def test_empty_array(self):
        assert parse_pools("[]") == ()

    def test_entries_keep_order(self):
        raw = json.dumps(
            [
                {"address": ADDRESS, "name": "Fund USDT Tranche", "decimals": 6},
                {"address": "0x" + "bb" * 20, "name": "Fund A", "decimals": 18},
            ]
        )
        pools = parse_pools(raw)
        assert [p.name for p in pools] == ["Fund USDT Tranche", "Fund A"]
        assert pools[1].decimals == 18

    def test_address_lowercased_and_trimmed(self):
        pools = parse_pools(json.dumps([{"address": f" {ADDRESS} ", "name": " Fund A ", "decimals": 6}]))
        assert pools == (PoolConfig(address=ADDRESS.lower(), name="Fund A", decimals=6),)

    def test_invalid_json(self):
        with pytest.raises(PoolConfigError, match="Failed to parse POOLS JSON"):
            parse_pools("[{")

    def test_not_an_array(self):
        with pytest.raises(PoolConfigError, match="JSON array"):
            parse_pools('{"address": "0x1"}')


class TestParsePoolEntry:
    @pytest.mark.parametrize(
        "entry",
        [
            "0x1",
            {"name": "Fund A", "decimals": 6},
            {"address": "", "name": "Fund A", "decimals": 6},
            {"address": ADDRESS, "decimals": 6},
            {"address": ADDRESS, "name": "  ", "decimals": 6},
            {"address": ADDRESS, "name": "Fund A"},
            {"address": ADDRESS, "name": "Fund A", "decimals": "6"},
            {"address": ADDRESS, "name": "Fund A", "decimals": -1},
            {"address": ADDRESS, "name": "Fund A", "decimals": 6.0},
            {"address": ADDRESS, "name": "Fund A", "decimals": True},
        ],
    )
    def test_invalid_entries(self, entry):
        with pytest.raises(PoolConfigError, match=r"POOLS\[3\]"):
            parse_pool_entry(entry, 3)

    def test_zero_decimals_allowed(self):
        assert parse_pool_entry({"address": ADDRESS, "name": "Points", "decimals": 0}, 0).decimals == 0
