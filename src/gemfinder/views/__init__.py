"""Presentation views for gemfinder."""
