"""Shared helpers for gemfinder."""
