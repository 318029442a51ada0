"""
swapkeeper: secret-reveal coordinator for hash-locked cross-chain swaps.

Creates hash-locked orders, keeps their secrets in a durable vault and
reveals each secret only when the order network reports the fill ready.
"""

__version__ = "0.1.0"
