"""Data models for gemfinder."""
