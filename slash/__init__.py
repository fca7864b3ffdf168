"""Slash-command expression library: conditionals, loops and structured data for chat pipelines."""

from slash.slash_datatypes import (
    SlashError, InvalidRuleError, MissingCollectionError, IndexPathError,
    UserHandlerFailure, UnknownCommandError, PipelineSyntaxError, NestingLimitError,
    VariableStore, Conditional, Caught, Switch, decode_envelope, KeyedCollection,
    PipeResult, slash_command,
)
from slash.slash_runtime import CommandRegistry, ExecutionResult, PipelineRunner

__all__ = [
    "SlashError", "InvalidRuleError", "MissingCollectionError", "IndexPathError",
    "UserHandlerFailure", "UnknownCommandError", "PipelineSyntaxError", "NestingLimitError",
    "VariableStore", "Conditional", "Caught", "Switch", "decode_envelope", "KeyedCollection",
    "PipeResult", "slash_command", "CommandRegistry", "ExecutionResult", "PipelineRunner",
]
