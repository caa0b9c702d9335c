"""Processor role: raw blocks in, normalized events out."""
