"""
dexpipe: stream-driven DEX event pipeline.
"""

__version__ = "0.1.0"
