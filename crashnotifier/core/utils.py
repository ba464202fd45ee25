"""
Core Utilities

Centralized utility functions for the crashnotifier core module.
"""

from bson import ObjectId


def generate_id() -> str:
    """
    Generate a unique ID for waiters and crash records.

    Uses a BSON ObjectId which provides:
    - Zero collision risk (timestamp + machine + process + counter)
    - Shorter than UUID (24 chars vs 36 chars)
    - Time-ordered (sortable by creation time)
    """
    return str(ObjectId())
