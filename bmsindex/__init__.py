"""
bmsindex - a batch indexer for BMS-family rhythm-game charts.

Charts scattered across many source folders are decoded, identified by a
content hash, grouped into songs by their directory and recorded in a
SQLite index for later lookup.
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__"]
