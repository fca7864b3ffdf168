import inspect
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional

from slash.slash_commands import CommandLib, substitute
from slash.slash_datatypes import (
    NestingLimitError, PipeResult, SlashError, UnknownCommandError,
    UserHandlerFailure, VariableStore, slash_command,
)
from slash.slash_parser import CommandCall, parse_pipeline
from slash.slash_serialize import to_pipe

DEFAULT_MAX_DEPTH = 64


# ===================================================================
# Command registry
# ===================================================================

@dataclass
class Command:
    name: str
    handler: Callable
    aliases: tuple = ()
    help_text: str = ""
    synopsis: str = ""
    takes_pipe: bool = False


def _takes_pipe(handler: Callable) -> bool:
    """True when `handler` can be called with a `pipe=` keyword."""
    try:
        params = inspect.signature(handler).parameters.values()
    except (TypeError, ValueError):
        return False
    for p in params:
        if p.kind is p.VAR_KEYWORD:
            return True
        if p.name == "pipe" and p.kind in (p.KEYWORD_ONLY, p.POSITIONAL_OR_KEYWORD):
            return True
    return False


class CommandRegistry:
    """Case-insensitive name -> Command table."""

    def __init__(self):
        self._commands: Dict[str, Command] = {}
        self._primary: List[Command] = []

    def register(self, name: str, handler: Callable, aliases: Iterable[str] = (),
                 help_text: str = "", synopsis: str = "") -> Command:
        cmd = Command(name, handler, tuple(aliases), help_text, synopsis, _takes_pipe(handler))
        for key in (name, *cmd.aliases):
            self._commands[key.lower()] = cmd
        self._primary = [c for c in self._primary if c.name.lower() != name.lower()]
        self._primary.append(cmd)
        return cmd

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name.lower())

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._commands

    def names(self) -> List[str]:
        return sorted(c.name for c in self._primary)

    def commands(self) -> List[Command]:
        return list(self._primary)

    def bind(self, lib: Any, replace: bool = False):
        """Register every @slash_command method of `lib`.

        Names the registry already knows are left alone unless `replace` is set,
        so a host can override a built-in before the runner binds its own.
        """
        for _, member in inspect.getmembers(lib):
            if not callable(member):
                continue
            meta = getattr(member, "_slash_command", None)
            if meta is None:
                func = getattr(member, "__func__", None)
                meta = getattr(func, "_slash_command", None) if func is not None else None
            if meta is None:
                continue
            if meta["name"] in self and not replace:
                continue
            self.register(meta["name"], member, meta["aliases"], meta["help"], meta["synopsis"])


# ===================================================================
# Host commands
# ===================================================================

class HostLib:
    """The handful of chat-host commands the expression commands lean on."""

    def __init__(self, runner: 'PipelineRunner'):
        self.runner = runner

    @property
    def store(self) -> VariableStore:
        return self.runner.store

    def _name(self, args, value) -> str:
        return args.get('key') or args.get('name') or (value or '').strip()

    @slash_command(synopsis="(text)", help="Echoes the provided text to the output and passes it on.")
    def _echo(self, args, value, *, pipe=""):
        self.runner.side_effects.append({'topics': ['stdout'], 'message': value})
        return value

    @slash_command(synopsis="(text)", help="Passes the text on to the next command.")
    def _pass(self, args, value, *, pipe=""):
        return value

    @slash_command(synopsis="key=name (value)", help="Sets a local variable.")
    def _setvar(self, args, value, *, pipe=""):
        key = args.get('key') or args.get('name')
        if not key:
            raise UserHandlerFailure("/setvar: key= is required")
        self.store.write_local(key, value)
        return value

    @slash_command(synopsis="(name)", help="Returns the value of a local variable.")
    def _getvar(self, args, value, *, pipe=""):
        return to_pipe(self.store.read_local(self._name(args, value)))

    @slash_command(synopsis="key=name (value)", help="Sets a global variable.")
    def _setglobalvar(self, args, value, *, pipe=""):
        key = args.get('key') or args.get('name')
        if not key:
            raise UserHandlerFailure("/setglobalvar: key= is required")
        self.store.write_global(key, value)
        return value

    @slash_command(synopsis="(name)", help="Returns the value of a global variable.")
    def _getglobalvar(self, args, value, *, pipe=""):
        return to_pipe(self.store.read_global(self._name(args, value)))

    @slash_command(synopsis="(name)", help="Deletes a local variable.")
    def _flushvar(self, args, value, *, pipe=""):
        self.store.delete_local(self._name(args, value))
        return ""

    @slash_command(synopsis="(message)", help="Fails with the given message.")
    def _throw(self, args, value, *, pipe=""):
        raise UserHandlerFailure(value or "thrown")


# ===================================================================
# Pipeline runner
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a pipeline execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_type and not msg.startswith(f"{self.error_type}:"):
            return f"{self.error_type}: {msg}"
        return msg


def _max_depth_from_env() -> int:
    raw = os.environ.get("SLASH_MAX_DEPTH")
    if raw is None:
        return DEFAULT_MAX_DEPTH
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MAX_DEPTH
    return value if value > 0 else DEFAULT_MAX_DEPTH


class PipelineRunner:
    """Parses pipelines and dispatches each stage to a registered command."""

    def __init__(self, store: Optional[VariableStore] = None, registry: Optional[CommandRegistry] = None):
        self.store = store if store is not None else VariableStore()
        self.registry = registry if registry is not None else CommandRegistry()
        self.side_effects: List[Dict] = []
        self.depth = 0
        self.max_depth = _max_depth_from_env()
        self.registry.bind(CommandLib(self))
        self.registry.bind(HostLib(self))

    def _dbg(self, *parts):
        if os.environ.get("SLASH_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    def _prepare(self, call: CommandCall, pipe: str):
        args = {k: substitute(v, pipe=pipe) for k, v in call.args.items()}
        if not call.has_value:
            return args, pipe
        value = call.value
        # a nested command line keeps its {{pipe}} for its own stages
        if not value.startswith('/'):
            value = substitute(value, pipe=pipe)
        return args, value

    async def _dispatch(self, call: CommandCall, pipe: str) -> str:
        cmd = self.registry.get(call.name)
        if cmd is None:
            raise UnknownCommandError(call.name)
        args, value = self._prepare(call, pipe)
        self._dbg("dispatch", f"/{cmd.name}", "depth", self.depth, "args", args, "value", repr(value))
        try:
            if cmd.takes_pipe:
                result = cmd.handler(args, value, pipe=pipe)
            else:
                result = cmd.handler(args, value)
            if inspect.isawaitable(result):
                result = await result
        except SlashError:
            raise
        except Exception as e:
            raise UserHandlerFailure(str(e) or type(e).__name__) from e
        return to_pipe(result)

    async def execute(self, text: str, pipe: str = "") -> PipeResult:
        """Run one pipeline and return its output. Raises on failure."""
        if self.depth >= self.max_depth:
            raise NestingLimitError(f"pipelines nested deeper than {self.max_depth}")
        self.depth += 1
        try:
            stages: List[str] = []
            for call in parse_pipeline(text):
                pipe = await self._dispatch(call, pipe)
                stages.append(pipe)
            return PipeResult(pipe, stages)
        finally:
            self.depth -= 1

    async def run(self, text: str) -> ExecutionResult:
        """The main entry point: run a pipeline and report instead of raising."""
        self.side_effects = []
        self.depth = 0
        try:
            result = await self.execute(text)
        except Exception as e:
            msg = str(e)
            self._dbg("error", type(e).__name__, msg)
            self.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult('error', error_message=msg, error_type=type(e).__name__,
                                   side_effects=self.side_effects)
        return ExecutionResult('success', value=result.pipe, side_effects=self.side_effects)
