"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

EXECUTION_MODES = ("sequential", "concurrent")


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return int(raw)


def _opt_int_env(key: str) -> Optional[int]:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return None
    return int(raw)


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return float(raw)


def _required(key: str) -> str:
    val = os.getenv(key)
    if not val:
        raise RuntimeError(f"{key} must be set")
    return val


def _is_address(value: str) -> bool:
    if not value.startswith("0x") or len(value) != 42:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class IndexerSettings:
    rpc_url: str
    privacy_proxy_address: str
    token_pool_address: str
    token_address: str
    clearing_house_address: str | None  # resolved through the proxy when unset
    db_path: str
    start_block: int | None  # None = start at the head block captured at startup
    chunk_size: int
    chunk_delay_ms: int
    poll_interval: float
    http_timeout: float
    metrics_port: int  # 0 disables the metrics server
    log_file: str | None

    def dump(self) -> dict:
        return self.__dict__.copy()

    @classmethod
    def load(cls) -> "IndexerSettings":
        cfg = cls(
            rpc_url=_required("RPC_URL"),
            privacy_proxy_address=_required("PRIVACY_PROXY_ADDRESS"),
            token_pool_address=_required("TOKEN_POOL_ADDRESS"),
            token_address=_required("TOKEN_ADDRESS"),
            clearing_house_address=os.getenv("CLEARING_HOUSE_ADDRESS") or None,
            db_path=os.getenv("DB_PATH", "./db"),
            start_block=_opt_int_env("INDEXER_START_BLOCK"),
            chunk_size=_int_env("INDEXER_CHUNK_SIZE", 2000),
            chunk_delay_ms=_int_env("INDEXER_CHUNK_DELAY_MS", 500),
            poll_interval=_float_env("POLL_INTERVAL_SEC", 2.0),
            http_timeout=_float_env("HTTP_TIMEOUT", 10.0),
            metrics_port=_int_env("METRICS_PORT", 0),
            log_file=os.getenv("LOG_FILE") or None,
        )
        cfg._validate()
        _sanity_check("indexer", cfg.dump())
        return cfg

    def _validate(self) -> None:
        for key, value in (
            ("PRIVACY_PROXY_ADDRESS", self.privacy_proxy_address),
            ("TOKEN_POOL_ADDRESS", self.token_pool_address),
            ("TOKEN_ADDRESS", self.token_address),
        ):
            if not _is_address(value):
                raise ValueError(f"{key} is not a 20-byte hex address: {value}")
        if self.clearing_house_address is not None and not _is_address(self.clearing_house_address):
            raise ValueError("CLEARING_HOUSE_ADDRESS is not a 20-byte hex address")
        if self.start_block is not None and self.start_block < 0:
            raise ValueError("INDEXER_START_BLOCK must be >= 0")
        if self.chunk_size <= 0:
            raise ValueError("INDEXER_CHUNK_SIZE must be > 0")
        if self.chunk_delay_ms < 0:
            raise ValueError("INDEXER_CHUNK_DELAY_MS must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("POLL_INTERVAL_SEC must be > 0")
        if self.http_timeout <= 0:
            raise ValueError("HTTP_TIMEOUT must be > 0")


@dataclass(frozen=True)
class LiquidatorSettings:
    rpc_url: str
    private_key: str
    clearing_house_address: str
    oracle_address: str
    execution_mode: str  # "sequential" or "concurrent"; fixed for the process lifetime
    max_in_flight: int
    nonce_resync_sec: float
    receipt_timeout: float
    gas_limit: int
    poll_interval: float
    http_timeout: float
    metrics_port: int
    log_file: str | None

    def dump(self) -> dict:
        data = self.__dict__.copy()
        data["private_key"] = "***"
        return data

    @classmethod
    def load(cls, force_sequential: bool = False) -> "LiquidatorSettings":
        mode = os.getenv("EXECUTION_MODE", "concurrent").lower()
        if force_sequential:
            mode = "sequential"
        cfg = cls(
            rpc_url=_required("RPC_URL"),
            private_key=_required("LIQUIDATOR_PRIVATE_KEY"),
            clearing_house_address=_required("CLEARING_HOUSE_CONTRACT_ADDRESS"),
            oracle_address=_required("ORACLE_CONTRACT_ADDRESS"),
            execution_mode=mode,
            max_in_flight=_int_env("MAX_IN_FLIGHT", 5),
            nonce_resync_sec=_float_env("NONCE_RESYNC_SEC", 60.0),
            receipt_timeout=_float_env("RECEIPT_TIMEOUT_SEC", 120.0),
            gas_limit=_int_env("LIQUIDATION_GAS_LIMIT", 500_000),
            poll_interval=_float_env("POLL_INTERVAL_SEC", 2.0),
            http_timeout=_float_env("HTTP_TIMEOUT", 10.0),
            metrics_port=_int_env("METRICS_PORT", 0),
            log_file=os.getenv("LOG_FILE") or None,
        )
        cfg._validate()
        _sanity_check("liquidator", cfg.dump())
        return cfg

    def resolve_signer(self):
        from eth_account import Account

        return Account.from_key(self.private_key)

    def _validate(self) -> None:
        if self.execution_mode not in EXECUTION_MODES:
            raise ValueError(f"EXECUTION_MODE must be one of {EXECUTION_MODES}, got {self.execution_mode!r}")
        for key, value in (
            ("CLEARING_HOUSE_CONTRACT_ADDRESS", self.clearing_house_address),
            ("ORACLE_CONTRACT_ADDRESS", self.oracle_address),
        ):
            if not _is_address(value):
                raise ValueError(f"{key} is not a 20-byte hex address: {value}")
        if self.max_in_flight <= 0:
            raise ValueError("MAX_IN_FLIGHT must be > 0")
        if self.nonce_resync_sec <= 0:
            raise ValueError("NONCE_RESYNC_SEC must be > 0")
        if self.receipt_timeout <= 0:
            raise ValueError("RECEIPT_TIMEOUT_SEC must be > 0")
        if self.gas_limit <= 21_000:
            raise ValueError("LIQUIDATION_GAS_LIMIT must exceed the intrinsic 21000")
        if self.poll_interval <= 0:
            raise ValueError("POLL_INTERVAL_SEC must be > 0")
        if self.execution_mode == "sequential" and self.max_in_flight != 1:
            logging.getLogger("perpsync").warning(
                "MAX_IN_FLIGHT is ignored in sequential mode (always 1)"
            )


def _sanity_check(process: str, fields: dict) -> None:
    """Log the effective settings once at startup so overrides are obvious."""
    logger = logging.getLogger("perpsync")
    logger.info(json.dumps({"event": "config_loaded", "process": process, **fields}))
