"""
ClickHouse Worker service package.

Resolves identifiers published by the Timescale worker and mirrors pools,
tokens, trades and price ticks into ClickHouse.
"""
