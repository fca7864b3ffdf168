"""Pipeline text → command calls, for the reference host.

A pipeline is `/cmd key=value ... unnamed value | /next ...`. A backslash
before `|` keeps the bar inside the current command, which is how a nested
pipeline is handed to /foreach, /try, /then and friends; each level of
nesting peels one backslash off.

Both levels are koine grammars under `grammar/`: `slash_pipeline.yaml`
splits the text into segments and `slash_command.yaml` reads one segment.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List

from koine import Parser

from slash.slash_datatypes import PipelineSyntaxError

GRAMMAR_DIR = Path(__file__).parent / "grammar"

# a named argument the grammar could not close ends up in the unnamed value
_UNCLOSED_ARG = re.compile(r'^[A-Za-z_][A-Za-z0-9_-]*=(["\[{])')
_CLOSERS = {'"': 'quote', '[': "'['", '{': "'{'"}


@dataclass
class CommandCall:
    """A parsed slash command."""
    name: str
    args: Dict[str, str] = field(default_factory=dict)
    value: str = ""
    has_value: bool = False
    raw: str = ""


_parsers: Dict[str, Parser] = {}


def grammar(name: str) -> Parser:
    """The koine parser for `grammar/<name>.yaml`, loaded once."""
    parser = _parsers.get(name)
    if parser is None:
        parser = Parser.from_file(str(GRAMMAR_DIR / f"{name}.yaml"))
        _parsers[name] = parser
    return parser


def _parse(name: str, text: str) -> Dict[str, Any]:
    parser = grammar(name)
    try:
        parse_out = parser.parse(text)
    except Exception as e:
        raise PipelineSyntaxError(f"could not parse {text!r}: {e}") from e

    if isinstance(parse_out, dict) and 'status' in parse_out:
        if parse_out.get('status') != 'success':
            msg = parse_out.get('message') or parse_out.get('error_message') or "parse failed"
            raise PipelineSyntaxError(f"{msg} (in {text!r})")
        parse_out = parse_out.get('ast')
    if not isinstance(parse_out, dict):
        raise PipelineSyntaxError(f"could not parse {text!r}")
    return parse_out


# --- AST helpers ---

def _children(node: Dict[str, Any]) -> List[Any]:
    children = node.get('children') or []
    if isinstance(children, dict):
        children = list(children.values())
    out = []
    for child in children:
        if isinstance(child, list):
            out.extend(child)
        elif child is not None:
            out.append(child)
    return out


def _walk(node: Dict[str, Any], tag: str) -> Iterator[Dict[str, Any]]:
    """Pre-order nodes tagged `tag`, not descending into a match."""
    for child in _children(node):
        if not isinstance(child, dict):
            continue
        if child.get('tag') == tag:
            yield child
        else:
            yield from _walk(child, tag)


def _text(node: Dict[str, Any]) -> str:
    if 'text' in node:
        return node['text']
    return ''.join(_text(c) for c in _children(node) if isinstance(c, dict))


# --- Public API ---

def split_pipeline(text: str) -> List[str]:
    ast = _parse("slash_pipeline", text)
    segments: List[str] = []
    for seg in _walk(ast, 'segment'):
        parts = []
        for piece in _children(seg):
            parts.append('|' if piece.get('tag') == 'escaped-bar' else _text(piece))
        segments.append(''.join(parts))
    return [s for s in segments if s.strip()]


def _arg_value(node: Dict[str, Any]) -> str:
    text = _text(node)
    if node.get('tag') == 'quoted':
        return text[1:-1].replace('\\"', '"')
    return text


def parse_command(segment: str) -> CommandCall:
    s = segment.strip()
    if not s.startswith('/'):
        raise PipelineSyntaxError(f"expected a /command, got: {s!r}")
    ast = _parse("slash_command", s)

    call = CommandCall(name="", raw=s)
    for node in _children(ast):
        tag = node.get('tag')
        if tag == 'name':
            call.name = _text(node)[1:]
        elif tag == 'named-arg':
            key, *rest = _children(node)
            call.args[_text(key)] = _arg_value(rest[0]) if rest else ''
        elif tag == 'value':
            call.value = _text(node).strip()
    if not call.name:
        raise PipelineSyntaxError(f"expected a /command, got: {s!r}")

    m = _UNCLOSED_ARG.match(call.value)
    if m:
        raise PipelineSyntaxError(f"unterminated {_CLOSERS[m.group(1)]} in: {s}")
    call.has_value = bool(call.value)
    return call


def parse_pipeline(text: str) -> List[CommandCall]:
    return [parse_command(seg) for seg in split_pipeline(text)]
