"""
Processor Core service package.

Decodes raw chain blocks with a pluggable block parser and emits pool,
swap and liquidity events to their streams.
"""
