"""ClickHouse warehouse worker."""
