"""Shared JSON serialization utilities for request bodies and log records."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, (set, frozenset)):
        return True, sorted(obj, key=str)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe JSON serializer for platform request bodies.

    Keeps native types where the platform expects them:
    - datetime/date → ISO 8601 string
    - Decimal → float
    - Path → string
    - sets → sorted list
    - pydantic models → alias-keyed dict without unset fields
    - Enums → value
    - Everything else → string (fallback)

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation with proper types
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if hasattr(obj, "value"):
        return obj.value
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
