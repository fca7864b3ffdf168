import pytest

from slash import CommandRegistry, ExecutionResult, PipelineRunner, VariableStore
from slash.slash_runtime import DEFAULT_MAX_DEPTH


async def run_cmd(src: str, store=None):
    runner = PipelineRunner(store=store)
    return await runner.run(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.format_error()
    if expected is not None:
        assert res.value == expected


def assert_error(res, error_type: str | None = None, contains: str | None = None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if error_type is not None:
        assert res.error_type == error_type, res.format_error()
    if contains is not None:
        assert contains in (res.error_message or "")


@pytest.mark.asyncio
async def test_pipe_substitution_and_implicit_value():
    assert_ok(await run_cmd("/pass hello | /pass {{pipe}} world"), "hello world")
    assert_ok(await run_cmd("/pass hi | /echo"), "hi")


@pytest.mark.asyncio
async def test_command_names_are_case_insensitive():
    assert_ok(await run_cmd("/ECHO hi"), "hi")
    assert_ok(await run_cmd("/ReplaceAll find=a replace=b aa"), "bb")


@pytest.mark.asyncio
async def test_unknown_command_and_syntax_errors():
    res = await run_cmd("/nope")
    assert_error(res, "UnknownCommandError", "Unknown command: /nope")
    assert res.format_error() == "UnknownCommandError: Unknown command: /nope"
    assert_error(await run_cmd("echo hi"), "PipelineSyntaxError")


@pytest.mark.asyncio
async def test_variable_host_commands():
    store = VariableStore()
    assert_ok(await run_cmd("/setvar key=a 5 | /getvar a", store), "5")
    assert store.read_local("a") == "5"
    assert_ok(await run_cmd("/flushvar a", store), "")
    assert not store.has_local("a")
    assert_ok(await run_cmd("/setglobalvar key=g [1] | /getglobalvar g", store), "[1]")
    store.write_local("items", [1, 2])
    assert_ok(await run_cmd("/getvar key=items", store), "[1,2]")
    assert_error(await run_cmd("/setvar x"), "UserHandlerFailure", "key=")


@pytest.mark.asyncio
async def test_nesting_limit(monkeypatch):
    monkeypatch.setenv("SLASH_MAX_DEPTH", "2")
    res = await run_cmd("/foreach list=[1] /foreach list=[2] /pass x")
    assert_error(res, "NestingLimitError")
    monkeypatch.delenv("SLASH_MAX_DEPTH")
    assert_ok(await run_cmd("/foreach list=[1] /foreach list=[2] /pass x"), "x")


@pytest.mark.parametrize("raw", ["abc", "0", "-3"])
def test_bad_max_depth_falls_back(monkeypatch, raw):
    monkeypatch.setenv("SLASH_MAX_DEPTH", raw)
    assert PipelineRunner().max_depth == DEFAULT_MAX_DEPTH


@pytest.mark.asyncio
async def test_debug_tracing(monkeypatch, capsys):
    monkeypatch.setenv("SLASH_DEBUG", "1")
    assert_ok(await run_cmd("/pass x | /then /pass y"))
    err = capsys.readouterr().err
    assert "[DBG] dispatch /pass" in err
    assert "[DBG] THEN" in err


@pytest.mark.asyncio
async def test_debug_tracing_is_off_by_default(monkeypatch, capsys):
    monkeypatch.delenv("SLASH_DEBUG", raising=False)
    assert_ok(await run_cmd("/pass x"))
    assert "[DBG]" not in capsys.readouterr().err


@pytest.mark.asyncio
async def test_registered_handlers_sync_async_and_failing():
    registry = CommandRegistry()

    def shout(args, value, *, pipe=""):
        return value.upper()

    async def count(args, value, *, pipe=""):
        return [1, 2, 3]

    def broken(args, value, *, pipe=""):
        raise ValueError("bad input")

    registry.register("shout", shout, aliases=("yell",), help_text="Upper-cases text.")
    registry.register("count", count)
    registry.register("broken", broken)
    runner = PipelineRunner(registry=registry)

    assert_ok(await runner.run("/yell hi"), "HI")
    assert_ok(await runner.run("/count"), "[1,2,3]")
    res = await runner.run("/broken")
    assert_error(res, "UserHandlerFailure", "bad input")
    assert_ok(await runner.run("/try /broken | /catch /pass {{error}}"), "bad input")


@pytest.mark.asyncio
async def test_two_argument_handlers_are_called_without_pipe():
    registry = CommandRegistry()

    async def reverse(args, value):
        return value[::-1]

    def stamp(args, value, **extra):
        return f"{value}@{extra.get('pipe', '')}"

    registry.register("upper", lambda args, value: value.upper())
    registry.register("reverse", reverse)
    registry.register("stamp", stamp)
    runner = PipelineRunner(registry=registry)

    assert_ok(await runner.run("/upper hi"), "HI")
    assert_ok(await runner.run("/reverse abc"), "cba")
    assert_ok(await runner.run("/pass x | /upper"), "X")
    assert_ok(await runner.run("/pass x | /stamp y"), "y@x")
    assert not registry.get("upper").takes_pipe
    assert registry.get("stamp").takes_pipe
    assert registry.get("foreach").takes_pipe


@pytest.mark.asyncio
async def test_host_registered_command_overrides_builtin():
    registry = CommandRegistry()
    registry.register("echo", lambda args, value, *, pipe="": f"<{value}>")
    runner = PipelineRunner(registry=registry)
    assert_ok(await runner.run("/echo hi"), "<hi>")
    assert runner.side_effects == []


def test_registry_lookup():
    runner = PipelineRunner()
    names = runner.registry.names()
    for name in ("test", "foreach", "map", "filter", "find", "getat", "setat", "ife", "elseif",
                 "then", "else", "try", "catch", "switch", "case", "replaceAll", "lalib?", "echo"):
        assert name in names
    assert runner.registry.get("REPLACE-ALL").name == "replaceAll"
    assert runner.registry.get("missing") is None
    assert "json-pretty" in runner.registry


def test_format_error():
    assert ExecutionResult('error', error_message='x', error_type='IndexPathError').format_error() == "IndexPathError: x"
    assert ExecutionResult('error', error_message='IndexPathError: x', error_type='IndexPathError').format_error() == "IndexPathError: x"
    assert ExecutionResult('success', value='ok').format_error() == ""


@pytest.mark.asyncio
async def test_execute_raises_and_reports_stages():
    runner = PipelineRunner()
    result = await runner.execute("/pass a | /pass {{pipe}}b")
    assert result.pipe == "ab"
    assert result.stages == ["a", "ab"]
    from slash import UserHandlerFailure
    with pytest.raises(UserHandlerFailure):
        await runner.execute("/throw no")
    assert runner.depth == 0


@pytest.mark.asyncio
async def test_side_effects_reset_per_run():
    runner = PipelineRunner()
    first = await runner.run("/echo one")
    second = await runner.run("/echo two")
    assert [e['message'] for e in first.side_effects] == ["one"]
    assert [e['message'] for e in second.side_effects] == ["two"]


# --- scenarios ---

@pytest.mark.asyncio
async def test_scenario_variables_loop_and_branch():
    store = VariableStore({"scores": '{"ann": 7, "bob": 3}'})
    src = (r"/foreach var=scores /ife /test left={{item}} rule=gte right=5"
           r" \| /then /pass {{index}} passed \| /else /pass {{index}} failed")
    res = await run_cmd(src, store)
    assert_ok(res, "bob failed")


@pytest.mark.asyncio
async def test_scenario_build_then_filter():
    store = VariableStore()
    runner = PipelineRunner(store=store)
    assert_ok(await runner.run("/setat var=nums index=0 4"))
    assert_ok(await runner.run("/setat var=nums index=1 9"))
    assert_ok(await runner.run("/setat var=nums index=2 1"))
    assert store.read_local("nums") == "[4,9,1]"
    res = await runner.run("/filter var=nums /test left={{item}} rule=gt right=3 | /join glue=+")
    assert_ok(res, "4+9")
