"""Result normalization for remote script responses.

The backend may wrap the script outcome under ``scriptResult`` (and again under
``resultParameter`` or ``code``) and may encode it as JSON inside a string.
``normalize`` reduces any decoded response to a ``(status, body)`` pair:

1. Descend into ``scriptResult``, then ``resultParameter`` or ``code``.
2. An object carrying ``body`` and a numeric-looking ``httpCode`` supplies
   the candidate body and status.
3. Anything else is the candidate body with no candidate status.
4. A string body is parsed as JSON when possible.
5. The candidate status is used only if it is an integer in [100, 599];
   otherwise the transport status wins.

The function is pure and never raises for a decoded JSON value.
"""

from __future__ import annotations

import json
import math
from enum import Enum
from typing import Any

from src.models import NormalizedResult, RemoteResponse

_RESULT_FIELD = "scriptResult"
_INNER_FIELDS = ("resultParameter", "code")


class ResultShape(str, Enum):
    NESTED = "nested"
    OBJECT = "object"
    STRING = "string"
    PRIMITIVE = "primitive"
    NULL = "null"


def classify(value: Any) -> ResultShape:
    if value is None:
        return ResultShape.NULL
    if isinstance(value, dict):
        if value.get(_RESULT_FIELD) is not None:
            return ResultShape.NESTED
        return ResultShape.OBJECT
    if isinstance(value, str):
        return ResultShape.STRING
    return ResultShape.PRIMITIVE


def _descend(raw: Any) -> Any:
    if classify(raw) is not ResultShape.NESTED:
        return raw
    result = raw[_RESULT_FIELD]
    if isinstance(result, dict):
        for field in _INNER_FIELDS:
            if result.get(field) is not None:
                return result[field]
    return result


def _parse_json(value: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(value)
    except (ValueError, RecursionError):
        return False, value


def _as_status(value: Any) -> int | None:
    """Coerce a candidate status; None unless it is an integer in range."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        number = int(value)
    else:
        return None
    return number if 100 <= number <= 599 else None


def _numeric_looking(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value.strip())
        except ValueError:
            return False
        return True
    return False


def normalize(raw: Any, transport_status: int) -> NormalizedResult:
    """Reduce a decoded backend response to the status and body to relay."""
    candidate = _descend(raw)
    if classify(candidate) is ResultShape.STRING:
        parsed, value = _parse_json(candidate)
        if parsed and isinstance(value, dict):
            candidate = value

    candidate_status: Any = None
    if (
        isinstance(candidate, dict)
        and "body" in candidate
        and _numeric_looking(candidate.get("httpCode"))
    ):
        candidate_status = candidate["httpCode"]
        body = candidate["body"]
    else:
        body = candidate

    if classify(body) is ResultShape.STRING:
        _, body = _parse_json(body)

    status = _as_status(candidate_status)
    if status is None:
        status = transport_status
    return NormalizedResult(status=status, body=body)


def normalize_response(response: RemoteResponse) -> NormalizedResult:
    return normalize(response.body, response.status_code)
