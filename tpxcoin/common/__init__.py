"""Shared helpers for tpxcoin."""
