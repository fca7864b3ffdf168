import json

import pytest

from slash import PipelineRunner, VariableStore


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


def stdout(res):
    return [e['message'] for e in res.side_effects if e['topics'] == ['stdout']]


# --- /foreach ---

@pytest.mark.asyncio
async def test_foreach_returns_last_result_in_order():
    res = await run_cmd("/foreach list=[1,2,3] /echo {{item}}")
    assert_ok(res, "3")
    assert stdout(res) == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_foreach_over_dictionary_uses_keys_as_index():
    res = await run_cmd('/foreach list={"a":1,"b":2} /echo {{index}}:{{item}}')
    assert_ok(res, "b:2")
    assert stdout(res) == ["a:1", "b:2"]


@pytest.mark.asyncio
async def test_foreach_passes_structured_items_as_json():
    assert_ok(await run_cmd('/foreach list=[{"x":1}] /getat index=x {{item}}'), "1")


@pytest.mark.asyncio
async def test_foreach_runs_nested_pipeline():
    res = await run_cmd(r"/foreach list=[1,2] /pass {{item}} \| /echo got {{pipe}}")
    assert_ok(res, "got 2")
    assert stdout(res) == ["got 1", "got 2"]


@pytest.mark.asyncio
async def test_foreach_is_sequential_over_variables():
    store = VariableStore()
    assert_ok(await run_cmd("/foreach list=[1,2,3] /setvar key=last {{item}}", store))
    assert store.read_local("last") == "3"


@pytest.mark.asyncio
async def test_foreach_collection_sources():
    assert_ok(await run_cmd("/foreach var=items /pass {{item}}", VariableStore({"items": "[1,2]"})), "2")
    assert_ok(await run_cmd("/foreach var=items /pass {{item}}", VariableStore({"items": [4, 5]})), "5")
    store = VariableStore({}, {"items": "[7]"})
    assert_ok(await run_cmd("/foreach var=missing globalvar=items /pass {{item}}", store), "7")


@pytest.mark.asyncio
async def test_foreach_literal_list_wins_over_variables():
    store = VariableStore({"xs": "[9]"}, {"gxs": "[8]"})
    assert_ok(await run_cmd("/foreach list=[1] var=xs /pass {{item}}", store), "1")
    assert_ok(await run_cmd("/map list=[1] var=xs /pass {{item}}", store), "[1]")
    assert_ok(await run_cmd("/foreach var=xs globalvar=gxs /pass {{item}}", store), "9")
    assert_ok(await run_cmd("/foreach list=[] var=xs /pass {{item}}", store), "")


@pytest.mark.asyncio
async def test_foreach_empty_list():
    assert_ok(await run_cmd("/foreach list=[] /echo x"), "")


@pytest.mark.asyncio
async def test_iteration_without_collection_fails():
    for name in ("foreach", "map", "filter", "find"):
        res = await run_cmd(f"/{name} /echo x")
        assert_error(res, "MissingCollectionError", f"/{name}: no list or dictionary")
    assert_error(await run_cmd("/map list=5 /pass x"), "MissingCollectionError")


# --- /map ---

@pytest.mark.asyncio
async def test_map_list_preserves_length_and_parses_results():
    res = await run_cmd("/map list=[1,2,3] /test left={{item}} rule=gt right=1")
    assert_ok(res, "[false,true,true]")


@pytest.mark.asyncio
async def test_map_dictionary_preserves_keys():
    res = await run_cmd('/map list={"a":1,"b":2} /pass {{item}}')
    assert_ok(res)
    assert set(json.loads(res.value)) == {"a", "b"}
    assert res.value == '{"a":1,"b":2}'


@pytest.mark.asyncio
async def test_map_keeps_plain_text_results():
    assert_ok(await run_cmd('/map list=["x","y"] /pass {{index}}-{{item}}'), '["0-x","1-y"]')


# --- /filter ---

@pytest.mark.asyncio
async def test_filter_list_and_dictionary():
    assert_ok(await run_cmd("/filter list=[1,5,10] /test left={{item}} rule=gt right=3"), "[5,10]")
    assert_ok(await run_cmd('/filter list={"a":1,"b":5} /test left={{item}} rule=gt right=3'), '{"b":5}')


@pytest.mark.asyncio
async def test_filter_keeps_structured_items():
    src = r'/filter list=[{"n":1},{"n":5}] /getat index=n {{item}} \| /test left={{pipe}} rule=gt right=2'
    assert_ok(await run_cmd(src), '[{"n":5}]')


# --- /find ---

@pytest.mark.asyncio
async def test_find_returns_first_match():
    assert_ok(await run_cmd("/find list=[1,5,10] /test left={{item}} rule=gt right=3"), "5")


@pytest.mark.asyncio
async def test_find_not_found_is_empty():
    assert_ok(await run_cmd("/find list=[1,2] /test left={{item}} rule=gt right=3"), "")
    assert_ok(await run_cmd("/find list=[] /test left={{item}} rule=gt right=3"), "")


@pytest.mark.asyncio
async def test_find_stops_at_first_match():
    res = await run_cmd(r"/find list=[1,2,3] /echo {{item}} \| /test left={{pipe}} rule=gte right=2")
    assert_ok(res, "2")
    assert stdout(res) == ["1", "2"]


@pytest.mark.asyncio
async def test_find_returns_structured_item_as_json():
    src = r'/find list=[{"n":1},{"n":5}] /getat index=n {{item}} \| /test left={{pipe}} rule=eq right=5'
    assert_ok(await run_cmd(src), '{"n":5}')


@pytest.mark.asyncio
async def test_find_returns_scalar_items_unquoted():
    src = '/find list=["ab","abc"] /test left={{item}} rule=in right=c'
    assert_ok(await run_cmd(src), "abc")
    src = '/find list={"x":"ab","y":"abc"} /test left={{item}} rule=in right=c'
    assert_ok(await run_cmd(src), "abc")
    assert_ok(await run_cmd("/find list=[1,5] /test left={{item}} rule=eq right=5"), "5")


# --- /getat, /setat ---

@pytest.mark.asyncio
async def test_getat():
    assert_ok(await run_cmd("/getat index=1 [1,2,3]"), "2")
    assert_ok(await run_cmd('/getat index=["a","b"] {"a":{"b":[1,2]}}'), "[1,2]")
    assert_ok(await run_cmd("/getat index=-1 [1,2,3]"), "3")
    assert_ok(await run_cmd("/getat index=9 [1,2,3]"), "")
    store = VariableStore({"data": '{"name":"Bob"}'})
    assert_ok(await run_cmd("/getat var=data index=name", store), "Bob")


@pytest.mark.asyncio
async def test_getat_reports_stored_null():
    assert_ok(await run_cmd('/getat index=a {"a":null,"b":1}'), "null")
    assert_ok(await run_cmd("/getat index=1 [1,null]"), "null")
    assert_ok(await run_cmd('/getat index=c {"a":null}'), "")
    assert_ok(await run_cmd('/getat index=["a","b"] {"a":null}'), "")


@pytest.mark.asyncio
async def test_getat_errors():
    assert_error(await run_cmd("/getat [1,2]"), "IndexPathError")
    assert_error(await run_cmd("/getat index=0"), "MissingCollectionError")


@pytest.mark.asyncio
async def test_setat():
    assert_ok(await run_cmd("/setat value=[1,2,3] index=1 X"), '[1,"X",3]')
    assert_ok(await run_cmd('/setat index=["a","b"] 5'), '{"a":{"b":5}}')


@pytest.mark.asyncio
async def test_setat_writes_back_to_variables():
    store = VariableStore({"cfg": '{"a":1}'}, {"g": "[1]"})
    assert_ok(await run_cmd("/setat var=cfg index=b 2", store), '{"a":1,"b":2}')
    assert store.read_local("cfg") == '{"a":1,"b":2}'
    assert_ok(await run_cmd("/setat globalvar=g index=1 x", store), '[1,"x"]')
    assert store.read_global("g") == '[1,"x"]'


@pytest.mark.asyncio
async def test_setat_then_getat_roundtrip():
    store = VariableStore()
    assert_ok(await run_cmd('/setat var=tree index=["users",0,"name"] Ann', store))
    assert_ok(await run_cmd('/getat var=tree index=["users",0,"name"]', store), "Ann")


@pytest.mark.asyncio
async def test_setat_through_scalar_fails():
    assert_error(await run_cmd("/setat value=5 index=a x"), "IndexPathError")
