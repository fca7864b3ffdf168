from __future__ import annotations

import decimal
import json
import math
import re
from typing import Any, Optional, Tuple
import collections.abc

# YAML is only needed for variable seed documents
import yaml


# --------------------------
# Helpers
# --------------------------

def _reject_constant(name: str):
    # JSON.parse has no NaN / Infinity literals
    raise ValueError(f"invalid JSON constant: {name}")


def format_number(n: int | float) -> str:
    """Render a number the way JavaScript's String(number) does."""
    if isinstance(n, bool):
        return 'true' if n else 'false'
    if isinstance(n, int):
        return str(n)
    if math.isnan(n):
        return 'NaN'
    if math.isinf(n):
        return 'Infinity' if n > 0 else '-Infinity'
    if n == 0:
        return '0'
    if n.is_integer() and abs(n) < 1e21:
        return str(int(n))
    text = repr(n)
    if 'e' not in text:
        return text
    if 1e-6 <= abs(n) < 1e21:
        return format(decimal.Decimal(text), 'f')
    mantissa, exp = text.split('e')
    sign = '-' if exp.startswith('-') else '+'
    return f"{mantissa}e{sign}{exp.lstrip('+-').lstrip('0') or '0'}"


def format_from_path(path: str) -> Optional[str]:
    p = path.lower()
    if p.endswith('.json'):
        return 'json'
    if p.endswith(('.yaml', '.yml')):
        return 'yaml'
    return None


def detect_format(data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml'.
    Falls back to simple data sniffing.
    """
    if data_hint is None:
        return None
    s = data_hint.lstrip()
    if s.startswith('{') or s.startswith('['):
        # Try JSON first; if it fails, YAML is a superset
        return 'json'
    if s:
        return 'yaml'
    return None


# --------------------------
# Host boundary codec
# --------------------------

def try_parse_json(text: Any) -> Tuple[bool, Any]:
    """
    Opportunistic JSON.parse. Returns (True, value) on success and (False, text)
    when `text` is not a string or not valid JSON; failures are never raised.
    """
    if not isinstance(text, str):
        return False, text
    try:
        return True, json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        return False, text


def parse_or_keep(value: Any) -> Any:
    """JSON-decode `value` if it is JSON text, otherwise hand it back unchanged."""
    ok, out = try_parse_json(value)
    return out if ok else value


def _encode_str(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def to_json(value: Any, indent: Optional[int] = None) -> str:
    """JSON.stringify for plain Python JSON values (lists, dicts, scalars)."""
    pad = ' ' * indent if indent else ''

    def enc(v, level):
        match v:
            case None:
                return 'null'
            case bool():
                return 'true' if v else 'false'
            case int():
                return str(v)
            case float():
                return format_number(v) if math.isfinite(v) else 'null'
            case str():
                return _encode_str(v)
        if isinstance(v, collections.abc.Mapping):
            items = [(str(k), x) for k, x in v.items()]
            if not items:
                return '{}'
            if not pad:
                return '{' + ','.join(f"{_encode_str(k)}:{enc(x, level + 1)}" for k, x in items) + '}'
            inner = pad * (level + 1)
            body = (',\n').join(f"{inner}{_encode_str(k)}: {enc(x, level + 1)}" for k, x in items)
            return '{\n' + body + '\n' + pad * level + '}'
        if isinstance(v, (list, tuple)):
            if not v:
                return '[]'
            if not pad:
                return '[' + ','.join(enc(x, level + 1) for x in v) + ']'
            inner = pad * (level + 1)
            body = (',\n').join(f"{inner}{enc(x, level + 1)}" for x in v)
            return '[\n' + body + '\n' + pad * level + ']'
        return _encode_str(str(v))

    return enc(value, 0)


def to_pipe(value: Any) -> str:
    """Encode a handler result for the next pipeline stage."""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, collections.abc.Mapping)):
        return to_json(value)
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


# --------------------------
# Documents
# --------------------------

def deserialize(text: str, *, fmt: Optional[str] = None) -> Any:
    """
    Convert document text to native Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses sniffing.
    Returns dict/list/scalars for structured formats; returns raw text otherwise.
    """
    f = (fmt or detect_format(text))
    if f == 'json':
        try:
            return json.loads(text)
        except ValueError:
            # Fallback to YAML if declared JSON but content is actually YAML-like
            try:
                return yaml.safe_load(text)
            except yaml.YAMLError:
                return text
    if f == 'yaml':
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError:
            return text
    return text


_REGEX_LITERAL = re.compile(r'^/(.+)/([a-z]*)$')


def parse_regex_literal(text: str) -> Optional[Tuple[str, str]]:
    """Split a `/pattern/flags` literal into (pattern, flags), or None."""
    m = _REGEX_LITERAL.match(text or '')
    if not m:
        return None
    return m.group(1), m.group(2)


__all__ = [
    "deserialize",
    "detect_format",
    "format_from_path",
    "format_number",
    "parse_or_keep",
    "parse_regex_literal",
    "to_json",
    "to_pipe",
    "try_parse_json",
]
