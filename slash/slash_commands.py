# slash_commands.py

import random
import re
import time
from typing import Any, Dict

from slash.slash_access import MISSING, get_at, index_path, set_at
from slash.slash_datatypes import (
    Caught, Conditional, KeyedCollection, MissingCollectionError, Switch,
    UserHandlerFailure, decode_envelope, slash_command,
)
from slash.slash_rules import RULE_HELP, evaluate
from slash.slash_serialize import parse_or_keep, parse_regex_literal, to_json, to_pipe, try_parse_json
from slash.slash_values import (
    first_arg, is_nan, is_true_boolean, js_number, js_string, js_truthy,
    loose_equals, resolve_collection, resolve_operand, resolve_structured, resolve_value,
)

Args = Dict[str, str]

_ITERATION_SYNOPSIS = "[optional list=[1,2,3]] [optional var=varname] [optional globalvar=globalvarname] (/command {{item}} {{index}})"
_VAR_SYNOPSIS = "[optional var=varname] [optional globalvar=globalvarname]"
_JS_REPLACEMENT = re.compile(r"\$(\$|&|`|'|\d{1,2})")


def substitute(template: str, **values: str) -> str:
    """Replace {{name}} placeholders (case-insensitive) with literal text."""
    for name, text in values.items():
        template = re.sub(r'\{\{' + re.escape(name) + r'\}\}', lambda _m, t=text: t, template, flags=re.IGNORECASE)
    return template


def placeholder_text(value: Any) -> str:
    if value is None or isinstance(value, (list, dict)):
        return to_json(value)
    return js_string(value)


def _regex_flags(flags: str) -> int:
    out = 0
    if 'i' in flags:
        out |= re.IGNORECASE
    if 'm' in flags:
        out |= re.MULTILINE
    if 's' in flags:
        out |= re.DOTALL
    return out


def _js_replacer(replacement: str):
    """Expand a JavaScript replacement string ($&, $1, $$, ...) per match."""
    def expand(m: re.Match) -> str:
        def one(r: re.Match) -> str:
            tok = r.group(1)
            if tok == '$':
                return '$'
            if tok == '&':
                return m.group(0)
            if tok == '`':
                return m.string[:m.start()]
            if tok == "'":
                return m.string[m.end():]
            idx = int(tok)
            if 0 < idx <= (m.re.groups or 0):
                return m.group(idx) or ''
            return r.group(0)
        return _JS_REPLACEMENT.sub(one, replacement)
    return expand


def _relative_index(raw: Any, length: int, default: int) -> int:
    if raw is None:
        return default
    n = js_number(raw)
    if is_nan(n):
        return 0
    if n == float('inf'):
        return length
    if n == float('-inf'):
        return 0
    n = int(n)
    if n < 0:
        return max(length + n, 0)
    return min(n, length)


class CommandLib:
    """Python implementations of the expression commands.

    Every handler takes the named arguments, the unnamed value and, as the
    keyword-only `pipe`, the output of the previous pipeline stage.
    """

    def __init__(self, runner):
        self.runner = runner

    @property
    def store(self):
        return self.runner.store

    def _dbg(self, *parts):
        self.runner._dbg(*parts)

    async def _run(self, command: str) -> str:
        result = await self.runner.execute(command)
        return result.pipe

    def _incoming(self, args: Args, pipe: str) -> str:
        # an explicit pipe= wins over the implicit previous output
        text = args.get('pipe')
        return pipe if text is None else text

    def _collection(self, args: Args, command: str) -> KeyedCollection:
        data = resolve_collection(self.store, args.get('list'), args.get('var'), args.get('globalvar'))
        return KeyedCollection.wrap(data, command)

    async def _run_item(self, template: str, key: Any, item: Any) -> str:
        command = substitute(template, item=placeholder_text(item), index=js_string(key))
        return await self._run(command)

    # --- Help ---
    @slash_command("lalib?", synopsis="", help="Lists LALib commands")
    def _lalib_help(self, args: Args, value: str, *, pipe: str = ""):
        lines = []
        for cmd in self.runner.registry.commands():
            head = f"/{cmd.name}"
            if cmd.synopsis:
                head = f"{head} {cmd.synopsis}"
            lines.append(f"{head} - {cmd.help_text}" if cmd.help_text else head)
        return "\n".join(lines)

    # --- Boolean Operations ---
    @slash_command(synopsis="left=val rule=rule right=val",
                   help="Returns true or false, depending on whether left and right adhere to rule. Available rules: " + RULE_HELP)
    def _test(self, args: Args, value: str, *, pipe: str = ""):
        a = resolve_operand(first_arg(args, 'a', 'left', 'first', 'x'), self.store)
        b = resolve_operand(first_arg(args, 'b', 'right', 'second', 'y'), self.store)
        return to_json(evaluate(args.get('rule'), a, b))

    @slash_command(synopsis="left=val right=val",
                   help="Returns true if both left and right are true, otherwise false.")
    def _and(self, args: Args, value: str, *, pipe: str = ""):
        left = parse_or_keep(args.get('left'))
        right = parse_or_keep(args.get('right'))
        both = right if js_truthy(left) else left
        return to_json(loose_equals(both, True))

    @slash_command(synopsis="left=val right=val",
                   help="Returns true if at least one of left and right are true, false if both are false.")
    def _or(self, args: Args, value: str, *, pipe: str = ""):
        left = parse_or_keep(args.get('left'))
        right = parse_or_keep(args.get('right'))
        either = left if js_truthy(left) else right
        return to_json(loose_equals(either, True))

    @slash_command(synopsis="(value)", help="Returns true if value is false, otherwise true.")
    def _not(self, args: Args, value: str, *, pipe: str = ""):
        return to_json(not is_true_boolean(value))

    # --- List Operations ---
    @slash_command(synopsis=_ITERATION_SYNOPSIS,
                   help="Executes command for each item of a list or dictionary.")
    async def _foreach(self, args: Args, value: str, *, pipe: str = ""):
        collection = self._collection(args, 'foreach')
        result = None
        for key, item in collection.enumerate():
            result = await self._run_item(value, key, item)
        return result

    @slash_command(synopsis=_ITERATION_SYNOPSIS,
                   help="Executes command for each item of a list or dictionary and returns the list or dictionary of the command results.")
    async def _map(self, args: Args, value: str, *, pipe: str = ""):
        collection = self._collection(args, 'map')
        pairs = []
        for key, item in collection.enumerate():
            out = await self._run_item(value, key, item)
            pairs.append((key, parse_or_keep(out)))
        return to_json(collection.rebuild(pairs))

    @slash_command(synopsis=_ITERATION_SYNOPSIS,
                   help="Executes command for each item of a list or dictionary and returns the list or dictionary of only those items where the command returned true.")
    async def _filter(self, args: Args, value: str, *, pipe: str = ""):
        collection = self._collection(args, 'filter')
        kept = []
        for key, item in collection.enumerate():
            if is_true_boolean(await self._run_item(value, key, item)):
                kept.append((key, item))
        return to_json(collection.rebuild(kept))

    @slash_command(synopsis=_ITERATION_SYNOPSIS,
                   help="Executes command for each item of a list or dictionary and returns the first item where the command returned true.")
    async def _find(self, args: Args, value: str, *, pipe: str = ""):
        collection = self._collection(args, 'find')
        for key, item in collection.enumerate():
            if is_true_boolean(await self._run_item(value, key, item)):
                return to_pipe(item)
        return None

    @slash_command(synopsis="start=int [optional end=int] [optional length=int] " + _VAR_SYNOPSIS + " (optional value)",
                   help="Retrieves a slice of a list or string.")
    def _slice(self, args: Args, value: str, *, pipe: str = ""):
        data = resolve_structured(self.store, args.get('var'), args.get('globalvar'), value)
        if data is None:
            data = resolve_value(self.store, args.get('var'), args.get('globalvar'), value)
        if not isinstance(data, (list, str)):
            raise UserHandlerFailure(f"/slice: cannot slice a {type(data).__name__} value")
        start = args.get('start')
        end = args.get('end')
        if end is None and args.get('length'):
            end = js_number(start) + js_number(args['length'])
        lo = _relative_index(start, len(data), 0)
        hi = _relative_index(end, len(data), len(data))
        return to_pipe(data[lo:hi] if hi > lo else data[:0])

    @slash_command(synopsis="(list to shuffle)", help="Returns a shuffled list.")
    def _shuffle(self, args: Args, value: str, *, pipe: str = ""):
        data = resolve_structured(self.store, None, None, value)
        if not isinstance(data, list):
            raise MissingCollectionError('shuffle')
        shuffled = list(data)
        random.shuffle(shuffled)
        return to_json(shuffled)

    @slash_command(synopsis=_VAR_SYNOPSIS + " (list of lists)",
                   help="Takes a list of lists (each item must be a list of at least two items) and creates a dictionary by using each items first item as key and each items second item as value.")
    def _dict(self, args: Args, value: str, *, pipe: str = ""):
        data = resolve_structured(self.store, args.get('var'), args.get('globalvar'), value)
        if not isinstance(data, list):
            raise MissingCollectionError('dict')
        result = {}
        for entry in data:
            if not isinstance(entry, list):
                raise UserHandlerFailure(f"/dict: expected a list of pairs, got {to_json(entry)}")
            key = entry[0] if len(entry) > 0 else None
            result[js_string(key)] = entry[1] if len(entry) > 1 else None
        return to_json(result)

    # --- Split & Join ---
    @slash_command(synopsis="[optional find=\",\"] [optional trim=true|false] " + _VAR_SYNOPSIS + " (value)",
                   help="Splits value into list at every occurrence of find. Supports regex find=/\\s/")
    def _split(self, args: Args, value: str, *, pipe: str = ""):
        raw = resolve_value(self.store, args.get('var'), args.get('globalvar'), value)
        text = '' if raw is None else js_string(raw)
        find = args.get('find', ',')
        regex = parse_regex_literal(find)
        if regex:
            parts = re.split(regex[0], text, flags=_regex_flags(regex[1]))
            parts = ['' if p is None else p for p in parts]
        elif find == '':
            parts = list(text)
        else:
            parts = text.split(find)
        if is_true_boolean(args.get('trim', 'true')):
            parts = [p.strip() for p in parts]
        return to_json(parts)

    @slash_command(synopsis="[optional glue=\", \"] " + _VAR_SYNOPSIS + " (optional list)",
                   help="Joins the items of a list with glue into a single string. Use glue={{space}} to join with a space.")
    def _join(self, args: Args, value: str, *, pipe: str = ""):
        data = resolve_structured(self.store, args.get('var'), args.get('globalvar'), value)
        if not isinstance(data, list):
            return None
        glue = args.get('glue', ', ').replace('{{space}}', ' ')
        return glue.join('' if x is None else js_string(x) for x in data)

    # --- Text Operations ---
    @slash_command(synopsis="(text to trim)", help="Removes whitespace at the start and end of the text.")
    def _trim(self, args: Args, value: str, *, pipe: str = ""):
        return (value or '').strip()

    def _replace_text(self, args: Args, value: str, replace_all: bool) -> str:
        find = args.get('find')
        if not find:
            raise UserHandlerFailure("find= is required")
        replacement = args.get('replace', '')
        raw = resolve_value(self.store, args.get('var'), args.get('globalvar'), value)
        target = '' if raw is None else js_string(raw)
        regex = parse_regex_literal(find)
        if regex:
            pattern, flags = regex
            count = 0 if 'g' in flags else 1
            return re.sub(pattern, _js_replacer(replacement), target, count=count, flags=_regex_flags(flags))
        if replace_all:
            return re.sub(find, _js_replacer(replacement), target)
        return re.sub(re.escape(find), _js_replacer(replacement), target, count=1)

    @slash_command(synopsis="[find=string_or_regex] [replace=string] " + _VAR_SYNOPSIS + " (optional value)",
                   help="Replaces the first occurrence of \"find\" with \"replace\" in the given value or variable.")
    def _replace(self, args: Args, value: str, *, pipe: str = ""):
        return self._replace_text(args, value, replace_all=False)

    @slash_command("replaceAll", aliases=("replace-all",),
                   synopsis="[find=string_or_regex] [replace=string] " + _VAR_SYNOPSIS + " (optional value)",
                   help="Replaces all occurrences of \"find\" with \"replace\" in the given value or variable.")
    def _replace_all(self, args: Args, value: str, *, pipe: str = ""):
        return self._replace_text(args, value, replace_all=True)

    @slash_command(synopsis="(JSON)", help="Pretty print JSON.")
    def _json_pretty(self, args: Args, value: str, *, pipe: str = ""):
        ok, data = try_parse_json(value)
        if not ok:
            raise UserHandlerFailure("/json-pretty: value is not valid JSON")
        return to_json(data, indent=4)

    # --- Accessing & Manipulating Structured Data ---
    @slash_command(synopsis="index=int|fieldname|list " + _VAR_SYNOPSIS + " (optional value)",
                   help="Retrieves an item from a list or a property from a dictionary.")
    def _getat(self, args: Args, value: str, *, pipe: str = ""):
        path = index_path(args.get('index'))
        data = resolve_structured(self.store, args.get('var'), args.get('globalvar'), value)
        if data is None:
            raise MissingCollectionError('getat')
        result = get_at(data, path, MISSING)
        if result is MISSING:
            return None
        # a stored null is reported, a missing step is blank
        return to_json(None) if result is None else to_pipe(result)

    @slash_command(synopsis="index=int|fieldname|list " + _VAR_SYNOPSIS + " [optional value=list|dictionary] (value)",
                   help="Sets an item in a list or a property in a dictionary. Example: /setat value=[1,2,3] index=1 X returns [1,\"X\",3]. "
                        "Can be used to create structures that do not already exist.")
    def _setat(self, args: Args, value: str, *, pipe: str = ""):
        new_value = parse_or_keep(value)
        path = index_path(args.get('index'))
        data = resolve_structured(self.store, args.get('var'), args.get('globalvar'), args.get('value'))
        updated = set_at(data, path, new_value)
        text = to_pipe(updated)
        if args.get('var'):
            self.store.write_local(args['var'], text)
        if args.get('globalvar'):
            self.store.write_global(args['globalvar'], text)
        return text

    # --- Exception Handling ---
    @slash_command(synopsis="(command)", help="try catch.")
    async def _try(self, args: Args, value: str, *, pipe: str = ""):
        try:
            result = await self._run(value)
        except Exception as e:
            self._dbg("TRY", "caught", type(e).__name__, str(e))
            return Caught(True, exception=str(e)).encode()
        return Caught(False, result=result).encode()

    @slash_command(synopsis="[optional pipe={{pipe}}] (command)",
                   help="try catch. /catch must always be called right after /try. Use {{exception}} or {{error}} to get the exception's message.")
    async def _catch(self, args: Args, value: str, *, pipe: str = ""):
        incoming = self._incoming(args, pipe)
        match decode_envelope(incoming):
            case Caught(is_exception=True, exception=message):
                message = message or ''
                return await self._run(substitute(value, exception=message, error=message))
            case Caught(result=result):
                return result
        self._dbg("CATCH", "no /try envelope in pipe", repr(incoming))
        return incoming

    # --- Conditionals - switch ---
    @slash_command(synopsis=_VAR_SYNOPSIS + " (optional value)", help="Use with /case.")
    def _switch(self, args: Args, value: str, *, pipe: str = ""):
        subject = resolve_value(self.store, args.get('var'), args.get('globalvar'), value)
        return Switch(subject).encode()

    @slash_command(synopsis="[optional pipe={{pipe}}] [value=comparisonValue] (/command)",
                   help="Execute command and break out of the switch if the value given in /switch matches the value given here.")
    async def _case(self, args: Args, value: str, *, pipe: str = ""):
        incoming = self._incoming(args, pipe)
        match decode_envelope(incoming):
            case Switch(subject=subject):
                if loose_equals(subject, args.get('value')):
                    return await self._run(substitute(value, value=placeholder_text(subject)))
            case None:
                self._dbg("CASE", "no /switch envelope in pipe", repr(incoming))
        return incoming

    # --- Conditionals - if ---
    @slash_command(synopsis="(/command)",
                   help="Use with /then, /elseif, and /else. The provided command must return true or false.")
    async def _ife(self, args: Args, value: str, *, pipe: str = ""):
        result = await self._run(value)
        return Conditional(is_true_boolean(result)).encode()

    @slash_command(synopsis="[optional pipe={{pipe}}] (/command)",
                   help="Use with /ife, /then, and /else. The provided command must return true or false.")
    async def _elseif(self, args: Args, value: str, *, pipe: str = ""):
        incoming = self._incoming(args, pipe)
        match decode_envelope(incoming):
            case Conditional(outcome=False):
                result = await self._run(value)
                return Conditional(is_true_boolean(result)).encode()
            case None:
                self._dbg("ELSEIF", "no /ife envelope in pipe", repr(incoming))
        return incoming

    @slash_command(synopsis="[optional pipe={{pipe}}] (/command)",
                   help="Use with /ife, /elseif, and /then. The provided command will be executed if the previous /if or /elseif was false.")
    async def _else(self, args: Args, value: str, *, pipe: str = ""):
        incoming = self._incoming(args, pipe)
        match decode_envelope(incoming):
            case Conditional(outcome=False):
                return await self._run(value)
            case None:
                self._dbg("ELSE", "no /ife envelope in pipe", repr(incoming))
        return incoming

    @slash_command(synopsis="[optional pipe={{pipe}}] (/command)",
                   help="Use with /ife, /elseif, and /else. The provided command will be executed if the previous /if or /elseif was true.")
    async def _then(self, args: Args, value: str, *, pipe: str = ""):
        incoming = self._incoming(args, pipe)
        match decode_envelope(incoming):
            case Conditional(outcome=True):
                return await self._run(value)
            case None:
                self._dbg("THEN", "no /ife envelope in pipe", repr(incoming))
        return incoming

    # --- Time & Date ---
    @slash_command(help="Returns the number of milliseconds midnight at the beginning of January 1, 1970, UTC.")
    def _timestamp(self, args: Args, value: str, *, pipe: str = ""):
        return to_json(int(time.time() * 1000))
