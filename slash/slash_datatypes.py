"""
Defines the core data types for the slash command runtime.

This module provides the error taxonomy, the variable store capability
handed to commands, the control-flow envelopes that ride the pipe, and
the keyed-collection view used by the iteration commands.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import collections.abc


# =================================================================
# Errors
# =================================================================

class SlashError(Exception):
    """Base class for every error raised by the command core or the host."""
    pass


class InvalidRuleError(SlashError):
    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message)
        self.rule = rule


class MissingCollectionError(SlashError):
    def __init__(self, command: str = ""):
        msg = f"/{command}: no list or dictionary to work on" if command else "no list or dictionary to work on"
        super().__init__(msg)
        self.command = command


class IndexPathError(SlashError):
    pass


class UserHandlerFailure(SlashError):
    """A command failed while running user-supplied work; message is user-facing."""
    pass


class UnknownCommandError(SlashError):
    def __init__(self, name: str):
        super().__init__(f"Unknown command: /{name}")
        self.name = name


class PipelineSyntaxError(SlashError):
    pass


class NestingLimitError(SlashError):
    pass


# =================================================================
# Variable Store
# =================================================================

class VariableStore:
    """Local (chat-scoped) and global (persistent) variables.

    The command core never touches host state directly; everything it reads or
    writes about variables goes through one of these objects.
    """
    def __init__(self, local: Optional[Dict[str, Any]] = None, global_: Optional[Dict[str, Any]] = None):
        self.local: Dict[str, Any] = dict(local or {})
        self.global_: Dict[str, Any] = dict(global_ or {})

    @classmethod
    def from_file(cls, path: str) -> 'VariableStore':
        """Seed a store from a JSON or YAML document with `local`/`global` sections."""
        from pathlib import Path
        from slash.slash_serialize import deserialize, format_from_path
        p = Path(path)
        data = deserialize(p.read_text(encoding="utf-8"), fmt=format_from_path(str(p)))
        if not isinstance(data, collections.abc.Mapping):
            raise ValueError(f"variables file must contain a mapping: {path}")
        return cls(data.get("local") or {}, data.get("global") or {})

    def has_local(self, key: str) -> bool:
        return key in self.local

    def has_global(self, key: str) -> bool:
        return key in self.global_

    def read_local(self, key: str) -> Any:
        return self.local.get(key)

    def read_global(self, key: str) -> Any:
        return self.global_.get(key)

    def write_local(self, key: str, value: Any):
        self.local[key] = value

    def write_global(self, key: str, value: Any):
        self.global_[key] = value

    def delete_local(self, key: str):
        self.local.pop(key, None)

    def __repr__(self):
        return f"VariableStore(local={self.local!r}, global_={self.global_!r})"


# =================================================================
# Envelopes
# =================================================================

class Envelope(ABC):
    """Control-flow state carried from one command of a chain to the next."""

    @abstractmethod
    def to_wire(self) -> Dict[str, Any]: raise NotImplementedError

    def encode(self) -> str:
        from slash.slash_serialize import to_json
        return to_json(self.to_wire())


@dataclass(frozen=True)
class Conditional(Envelope):
    outcome: bool

    def to_wire(self):
        return {"if": self.outcome}


@dataclass(frozen=True)
class Caught(Envelope):
    is_exception: bool
    result: Any = None
    exception: Optional[str] = None

    def to_wire(self):
        if self.is_exception:
            return {"isException": True, "exception": self.exception}
        data: Dict[str, Any] = {"isException": False}
        # undefined members vanish on the wire
        if self.result is not None:
            data["result"] = self.result
        return data


@dataclass(frozen=True)
class Switch(Envelope):
    subject: Any

    def to_wire(self):
        if self.subject is None:
            return {}
        return {"switch": self.subject}


def decode_envelope(text: Any) -> Optional[Envelope]:
    """Recover the envelope riding a pipe value, or None when there is none."""
    from slash.slash_serialize import try_parse_json
    if not isinstance(text, str):
        return None
    ok, data = try_parse_json(text)
    if not ok or not isinstance(data, dict):
        return None
    match data:
        case {"if": cond} if cond is not None:
            return Conditional(bool(cond))
        case {"isException": flag} if flag is not None:
            if flag:
                exc = data.get("exception")
                return Caught(True, exception=None if exc is None else str(exc))
            return Caught(False, result=data.get("result"))
        case {"switch": subject} if subject is not None:
            return Switch(subject)
    return None


# =================================================================
# Keyed Collections
# =================================================================

Key = Union[int, str]


class KeyedCollection(ABC):
    """Uniform (key, item) view over lists and dictionaries."""

    def __init__(self, data):
        self.data = data

    @staticmethod
    def wrap(value: Any, command: str = "") -> 'KeyedCollection':
        if isinstance(value, list):
            return SequenceCollection(value)
        if isinstance(value, collections.abc.Mapping):
            return MappingCollection(value)
        raise MissingCollectionError(command)

    @abstractmethod
    def enumerate(self) -> List[Tuple[Key, Any]]: raise NotImplementedError

    @abstractmethod
    def rebuild(self, pairs: Iterable[Tuple[Key, Any]]): raise NotImplementedError

    def __len__(self):
        return len(self.data)


class SequenceCollection(KeyedCollection):
    def enumerate(self):
        return list(enumerate(self.data))

    def rebuild(self, pairs):
        # keys are dropped: a filtered list closes its gaps
        return [item for _, item in pairs]


class MappingCollection(KeyedCollection):
    def enumerate(self):
        return list(self.data.items())

    def rebuild(self, pairs):
        return {str(k): item for k, item in pairs}


@dataclass
class PipeResult:
    """Output of one executed pipeline."""
    pipe: str = ""
    stages: List[str] = field(default_factory=list)


def slash_command(name: Optional[str] = None, *, aliases: Iterable[str] = (), synopsis: str = "", help: str = ""):
    """Mark a method as a slash command. The default name is the method name
    without its leading underscore, with '_' turned into '-'."""
    def decorate(func):
        cmd_name = name or func.__name__.lstrip('_').replace('_', '-')
        func._slash_command = {
            "name": cmd_name,
            "aliases": tuple(aliases),
            "synopsis": synopsis,
            "help": help,
        }
        return func
    return decorate
