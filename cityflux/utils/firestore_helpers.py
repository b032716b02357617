"""
Firestore / Realtime Database helpers shared by the services.

NOTE: For firebase_admin SDK, we use positional arguments in where() which
still work. The deprecation warning is just a warning.
"""

import time


def where_filter(query, field_path: str, op_string: str, value):
    """
    Helper function for Firestore queries.

    Usage:
        query = where_filter(collection, "role", "in", ["Citizen"])
        query = where_filter(query, "timestamp", ">=", cutoff)
    """
    return query.where(field_path, op_string, value)


def now_millis() -> int:
    """Current wall-clock time as epoch milliseconds (Realtime DB timestamp format)."""
    return int(time.time() * 1000)



def is_valid_document_id(value) -> bool:
    """
    True if `value` can name a single Firestore document.

    The client raises ValueError for ids containing "/" because the path
    no longer points at a document.
    """
    if not isinstance(value, str) or not value:
        return False
    return "/" not in value and value not in (".", "..")
