"""Service implementations for the DEX event pipeline."""
