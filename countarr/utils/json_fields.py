"""Serialized JSON columns are read defensively: broken data gives a default."""
import json
from typing import Any


def dumps(value: Any):
    if value is None:
        return None
    return json.dumps(value, default=str)


def loads_list(raw) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def loads_dict(raw) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}
