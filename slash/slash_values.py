"""
Operand resolution and the host's loose value coercions.

Everything that crosses a command boundary is text, so commands keep asking
the same questions of a string: is it a number, a variable name, JSON, a
boolean flag? The answers follow the chat host's scripting conventions
(JavaScript's `Number()`, `String()`, `==` and truthiness), not Python's.
"""

import math
import re
import collections.abc
from typing import Any, Optional, Union

from slash.slash_datatypes import VariableStore
from slash.slash_serialize import format_number, try_parse_json

Number = Union[int, float]
NAN = float('nan')

_DECIMAL = re.compile(r'^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$')
_INFINITY = re.compile(r'^([+-]?)Infinity$')
_RADIX = {'x': 16, 'o': 8, 'b': 2}
_RADIX_LITERAL = re.compile(r'^0([xXoObB])([0-9a-fA-F]+)$')


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _number_from_text(text: str) -> Number:
    s = text.strip()
    if not s:
        return 0
    m = _INFINITY.match(s)
    if m:
        return -math.inf if m.group(1) == '-' else math.inf
    m = _RADIX_LITERAL.match(s)
    if m:
        try:
            return int(m.group(2), _RADIX[m.group(1).lower()])
        except ValueError:
            return NAN
    if not _DECIMAL.match(s):
        return NAN
    f = float(s)
    if f.is_integer():
        return int(f)
    return f


def js_number(value: Any) -> Number:
    """JavaScript `Number(value)`; returns NaN rather than raising."""
    match value:
        case None:
            return 0
        case bool():
            return 1 if value else 0
        case int() | float():
            return value
        case str():
            return _number_from_text(value)
    if isinstance(value, list):
        return _number_from_text(js_string(value))
    return NAN


def js_string(value: Any) -> str:
    """JavaScript `String(value)` for JSON values."""
    match value:
        case None:
            return 'null'
        case str():
            return value
        case bool() | int() | float():
            return format_number(value)
    if isinstance(value, list):
        return ','.join('' if x is None else js_string(x) for x in value)
    if isinstance(value, collections.abc.Mapping):
        return '[object Object]'
    return str(value)


def js_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if is_number(value):
        return not (value == 0 or is_nan(value))
    if isinstance(value, str):
        return value != ''
    return True


def is_true_boolean(value: Any) -> bool:
    """Only 'true' and 'on' count as yes; everything else is no."""
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return False
    return value.strip().lower() in ('on', 'true')


def loose_equals(a: Any, b: Any) -> bool:
    """JavaScript `a == b` over JSON values."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool):
        return loose_equals(1 if a else 0, b)
    if isinstance(b, bool):
        return loose_equals(a, 1 if b else 0)
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if is_number(a) and isinstance(b, str):
        return a == js_number(b)
    if isinstance(a, str) and is_number(b):
        return js_number(a) == b
    a_obj = isinstance(a, (list, collections.abc.Mapping))
    b_obj = isinstance(b, (list, collections.abc.Mapping))
    if a_obj and b_obj:
        return a is b
    if a_obj:
        return loose_equals(js_string(a), b)
    if b_obj:
        return loose_equals(a, js_string(b))
    return False


def first_arg(args: dict, *names: str) -> Optional[str]:
    """First non-empty named argument among `names` (aliases)."""
    for name in names:
        val = args.get(name)
        if val:
            return val
    return None


# ===================================================================
# Resolution
# ===================================================================

def resolve_operand(operand: Optional[str], store: VariableStore) -> Any:
    """
    Resolve one comparison operand: numeric literal, then local variable,
    then global variable, then the text itself. Never raises.
    """
    if operand is None:
        return ''
    as_number = js_number(operand)
    if not is_nan(as_number):
        return as_number
    if store.has_local(operand):
        stored = store.read_local(operand)
        return '' if stored is None else stored
    if store.has_global(operand):
        stored = store.read_global(operand)
        return '' if stored is None else stored
    return js_string(operand) or ''


def _structured(raw: Any) -> Any:
    if isinstance(raw, str):
        ok, parsed = try_parse_json(raw)
        return parsed if ok else None
    return raw


def resolve_structured(store: VariableStore, local: Optional[str] = None,
                       global_: Optional[str] = None, literal: Any = None) -> Any:
    """
    Find structured data from a local variable, a global variable or a literal,
    in that order. Each source is JSON-decoded; an empty or falsy result falls
    through to the next source. Returns None when nothing resolves.
    """
    value = None
    if local:
        value = _structured(store.read_local(local))
    if not js_truthy(value) and global_:
        value = _structured(store.read_global(global_))
    if not js_truthy(value) and literal:
        value = _structured(literal)
    return value


def resolve_collection(store: VariableStore, literal: Any = None,
                       local: Optional[str] = None, global_: Optional[str] = None) -> Any:
    """The list or dictionary an iteration command walks: the literal first,
    then the local variable, then the global one. Falsy results fall through."""
    value = _structured(literal) if literal else None
    if not js_truthy(value) and local:
        value = _structured(store.read_local(local))
    if not js_truthy(value) and global_:
        value = _structured(store.read_global(global_))
    return value


def resolve_value(store: VariableStore, local: Optional[str] = None,
                  global_: Optional[str] = None, literal: Any = None) -> Any:
    """Like resolve_structured, but hands back the stored value without decoding it."""
    value = None
    if local:
        value = store.read_local(local)
    if value is None and global_:
        value = store.read_global(global_)
    if value is None and literal:
        value = literal
    return value
