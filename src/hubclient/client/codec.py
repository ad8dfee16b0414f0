"""
JSON encoding/decoding for request payloads and response bodies.

Payloads are serialized with orjson; response bodies are parsed with orjson
and, when the caller supplies a target type, validated with a pydantic
TypeAdapter.  Callers bring their own schema types (pydantic models,
dataclasses, TypedDicts, builtins).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import orjson
from pydantic import BaseModel, TypeAdapter


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def encode_payload(payload: Any) -> bytes:
    """Serialize a request payload to JSON bytes."""
    return orjson.dumps(payload, default=_default)


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def validate(data: Any, target: Any = Any) -> Any:
    """Validate already-parsed JSON into ``target``.

    Raises:
        pydantic.ValidationError: If ``data`` does not match ``target``.
    """
    if target is Any:
        return data
    return _adapter(target).validate_python(data)


def decode_json(body: bytes, target: Any = Any) -> Any:
    """Parse JSON bytes and validate the result into ``target``.

    Raises:
        orjson.JSONDecodeError: If ``body`` is not valid JSON.
        pydantic.ValidationError: If the document does not match ``target``.
    """
    return validate(orjson.loads(body), target)


def pretty_json(text: str) -> str:
    """Re-serialize a JSON document with two-space indentation.

    Raises:
        orjson.JSONDecodeError: If ``text`` is not valid JSON.
    """
    return orjson.dumps(orjson.loads(text), option=orjson.OPT_INDENT_2).decode("utf-8")
