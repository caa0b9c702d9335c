"""
Timescale Worker service package.

Owns the pool and token surrogate ids, publishes identifier mappings to
the shared store and keeps trades, live reserves, prices and candles in
PostgreSQL/TimescaleDB.
"""
