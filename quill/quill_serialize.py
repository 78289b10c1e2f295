from __future__ import annotations

import json
import math
from typing import Any

import yaml

from quill.quill_lexer import Token
from quill.quill_datatypes import (
    Expression, NumericLiteral, QuillFunction, NativeFunction, QuillList,
)


# --------------------------
# Helpers
# --------------------------

def _number_to_builtin(value: float) -> Any:
    # JSON has no inf/nan; keep them readable as strings
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def to_builtin(obj: Any) -> Any:
    """Converts tokens, AST nodes and Quill values into plain Python data."""
    if isinstance(obj, Token):
        return {'kind': obj.kind.value, 'text': obj.text}
    if isinstance(obj, NumericLiteral):
        return {'node': 'NumericLiteral', 'value': _number_to_builtin(obj.value)}
    if isinstance(obj, Expression):
        out: dict = {'node': type(obj).__name__}
        for field in obj._fields:
            out[field] = to_builtin(getattr(obj, field))
        return out
    if isinstance(obj, QuillFunction):
        return {'function': {'params': list(obj.params), 'body': to_builtin(obj.body)}}
    if isinstance(obj, NativeFunction):
        return {'native': obj.name}
    if isinstance(obj, (list, tuple, QuillList)):
        return [to_builtin(x) for x in obj]
    if isinstance(obj, float):
        return _number_to_builtin(obj)
    return obj


# --------------------------
# Public API
# --------------------------

def serialize(value: Any,
              *,
              fmt: str = "yaml",
              pretty: bool = True) -> str:
    """
    Convert tokens, an AST or a Quill value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "serialize",
    "to_builtin",
]
