"""
E-Commerce Analytics Engine

Deterministic batch analytics over read-only e-commerce snapshots.
"""

__version__ = "1.0.0"
