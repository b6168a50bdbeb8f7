"""
Configuration package.

Environment-driven settings for the indexer and liquidator processes.
"""

from perpsync.config.config import IndexerSettings, LiquidatorSettings

__all__ = [
    "IndexerSettings",
    "LiquidatorSettings",
]
