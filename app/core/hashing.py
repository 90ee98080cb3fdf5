"""
Canonical serialization and content hashing.

The canonical form is compact JSON with sorted keys and ``None`` values
omitted at every depth, so the same logical object always produces the same
digest regardless of field construction order.

Field names of pydantic models and dataclasses are camelCased. Keys of plain
mappings are used verbatim, so the hash depends on the input type:
``{"department_code": "X"}`` and a model with a ``department_code`` field
holding ``"X"`` differ, while ``{"departmentCode": "X"}`` matches the model.
Callers that compare hashes must pass the same kind of object each time.
"""

import dataclasses
import hashlib
import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from pydantic import BaseModel


def to_camel(name: str) -> str:
    """snake_case or PascalCase field name to camelCase."""
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    head = parts[0]
    head = head[:1].lower() + head[1:]
    return head + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, BaseModel):
        return _normalize_fields(value.model_dump(mode="python"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _normalize_fields({f.name: getattr(value, f.name) for f in dataclasses.fields(value)})
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
    raise TypeError(f"Cannot canonicalize value of type {type(value).__name__}")


def _normalize_fields(fields: Mapping[str, Any]) -> dict:
    return {to_camel(k): _normalize(v) for k, v in fields.items() if v is not None}


def canonical_json(data: Any) -> str:
    """Deterministic JSON encoding of ``data``."""
    return json.dumps(
        _normalize(data),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def content_hash(data: Any) -> str:
    """SHA-256 (lowercase hex) of the canonical form of ``data``."""
    return sha256_hex(canonical_json(data))
