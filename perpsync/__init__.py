"""
perpsync: mirrors perp DEX position state from chain events and liquidates
insolvent positions on price ticks.
"""

__version__ = "0.3.0"
