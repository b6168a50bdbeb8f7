"""
Tests for environment-driven settings.
"""

import pytest

from perpsync.config.config import IndexerSettings, LiquidatorSettings
from perpsync.liquidation.governor import ExecutionPolicy

ADDR = "0x" + "12" * 20


@pytest.fixture
def indexer_env(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    monkeypatch.setenv("PRIVACY_PROXY_ADDRESS", ADDR)
    monkeypatch.setenv("TOKEN_POOL_ADDRESS", ADDR)
    monkeypatch.setenv("TOKEN_ADDRESS", ADDR)
    for key in ("CLEARING_HOUSE_ADDRESS", "INDEXER_START_BLOCK", "INDEXER_CHUNK_SIZE", "INDEXER_CHUNK_DELAY_MS"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def liquidator_env(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    monkeypatch.setenv("LIQUIDATOR_PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("CLEARING_HOUSE_CONTRACT_ADDRESS", ADDR)
    monkeypatch.setenv("ORACLE_CONTRACT_ADDRESS", ADDR)
    for key in ("EXECUTION_MODE", "MAX_IN_FLIGHT", "NONCE_RESYNC_SEC", "LIQUIDATION_GAS_LIMIT"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestIndexerSettings:

    def test_defaults(self, indexer_env):
        cfg = IndexerSettings.load()

        assert cfg.chunk_size == 2000
        assert cfg.chunk_delay_ms == 500
        assert cfg.start_block is None
        assert cfg.clearing_house_address is None

    def test_overrides(self, indexer_env):
        indexer_env.setenv("INDEXER_START_BLOCK", "1200")
        indexer_env.setenv("INDEXER_CHUNK_SIZE", "500")

        cfg = IndexerSettings.load()

        assert cfg.start_block == 1200
        assert cfg.chunk_size == 500

    def test_missing_required(self, indexer_env):
        indexer_env.delenv("TOKEN_POOL_ADDRESS")

        with pytest.raises(RuntimeError):
            IndexerSettings.load()

    def test_bad_address(self, indexer_env):
        indexer_env.setenv("TOKEN_ADDRESS", "0x1234")

        with pytest.raises(ValueError):
            IndexerSettings.load()

    def test_zero_chunk_size(self, indexer_env):
        indexer_env.setenv("INDEXER_CHUNK_SIZE", "0")

        with pytest.raises(ValueError):
            IndexerSettings.load()


class TestLiquidatorSettings:

    def test_default_is_concurrent_k5(self, liquidator_env):
        cfg = LiquidatorSettings.load()
        policy = ExecutionPolicy.from_settings(cfg)

        assert cfg.execution_mode == "concurrent"
        assert policy.max_in_flight == 5
        assert cfg.nonce_resync_sec == 60.0

    def test_local_flag_forces_sequential(self, liquidator_env):
        liquidator_env.setenv("EXECUTION_MODE", "concurrent")

        cfg = LiquidatorSettings.load(force_sequential=True)

        assert ExecutionPolicy.from_settings(cfg).max_in_flight == 1

    def test_unknown_mode(self, liquidator_env):
        liquidator_env.setenv("EXECUTION_MODE", "turbo")

        with pytest.raises(ValueError):
            LiquidatorSettings.load()

    def test_dump_masks_key(self, liquidator_env):
        assert LiquidatorSettings.load().dump()["private_key"] == "***"

    def test_signer(self, liquidator_env):
        signer = LiquidatorSettings.load().resolve_signer()
        assert signer.address.startswith("0x")
