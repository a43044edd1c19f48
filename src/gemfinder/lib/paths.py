"""Data directory layout for gemfinder.

Layout::

    <data>/tables/<table>.json          rows of the local data store
    <data>/user=<id>/preferences.json   local-only favorites, folders, drafts
    <data>/logs/                        log files
"""

from __future__ import annotations

import re
from pathlib import Path

USER_PREFIX = "user="
TABLES_DIR = "tables"
PREFERENCES_FILE = "preferences.json"
GUEST_USER = "guest"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._@-]")


def get_tables_dir(data_dir: Path) -> Path:
    """Get directory holding local store tables."""
    return data_dir / TABLES_DIR


def get_table_path(data_dir: Path, table: str) -> Path:
    """Get path to a local store table file.

    Args:
        data_dir: Base data directory.
        table: Table name.

    Returns:
        Path to <table>.json.
    """
    return get_tables_dir(data_dir) / f"{table}.json"


def sanitize_user_id(user_id: str) -> str:
    """Make a user id safe for use as a directory name."""
    return _UNSAFE_CHARS.sub("_", user_id) or GUEST_USER


def get_user_dir(data_dir: Path, user_id: str) -> Path:
    """Get the partition directory of a user.

    Args:
        data_dir: Base data directory.
        user_id: User identifier.

    Returns:
        Path to user=<id> directory.
    """
    return data_dir / f"{USER_PREFIX}{sanitize_user_id(user_id)}"


def get_preferences_path(user_dir: Path) -> Path:
    """Get path to a user's preferences file."""
    return user_dir / PREFERENCES_FILE
