"""
DEX Signal Pipeline.

A real-time market-signal pipeline for decentralized-exchange liquidity pools.
The pipeline discovers trading pools, continuously ingests swap events,
aggregates them into per-token statistics, and converts raw statistics plus
external market data into a single comparable 0-100 score per token.
"""

__version__ = "0.1.0"
