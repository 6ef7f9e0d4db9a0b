"""
Firestore query helpers.

Wraps the keyword `filter=` API so store queries avoid the positional
where() deprecation warning.
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Add one field filter to a collection reference or query.

    Usage:
        query = where_filter(collection, "status", "in", ["submitted", "assigned"])
        query = where_filter(query, "read_at", "==", None)
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))
