"""Timescale warehouse worker."""
