"""Services for gemfinder."""
