from __future__ import annotations

import asyncio

import pytest

from resload.cache import MemoryResourceCache, MemoryResponseCache
from resload.loader import CACHE_NAMESPACE, Loader
from resload.registry import RegistrationError
from resload.resolver import ResolutionError
from resload.transport import FetchError

from tests.unit.conftest import FakeTransport, settle


def _class_script(class_name: str, dependencies: list[str] | None = None) -> str:
    if not dependencies:
        return f"class {class_name}:\n    pass\n\ndefine(lambda: {class_name})\n"
    params = ", ".join(f"dep{i}" for i in range(len(dependencies)))
    return (
        f"def factory({params}):\n"
        f"    return type('{class_name}', (), {{'deps': ({params},)}})\n"
        "\n"
        f"define({dependencies!r}, factory)\n"
    )


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport(
        {
            "client/src/views/a.js": _class_script("A"),
            "client/src/views/b.js": _class_script("B"),
            "client/src/views/c.js": _class_script("C", ["views/a", "views/b"]),
            "client/modules/crm/src/views/detail.js": _class_script("Detail"),
            "client/res/templates/record/edit.tpl": "<form></form>",
            "client/lib/marked.py": "scope['Marked'] = {'name': 'marked'}\n",
        }
    )


@pytest.fixture()
def loader(transport: FakeTransport) -> Loader:
    return Loader(transport)


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_fetch(loader, transport):
    gate = transport.gate("client/src/views/a.js")
    first = asyncio.create_task(loader.load("views/a"))
    second = asyncio.create_task(loader.load("views/a"))
    await settle()

    assert transport.calls == ["client/src/views/a.js"]
    gate.set()
    value_one, value_two = await asyncio.gather(first, second)

    assert value_one is value_two
    assert value_one.__name__ == "A"
    assert transport.calls == ["client/src/views/a.js"]
    await settle()
    assert loader.context.pending == {}


@pytest.mark.asyncio
async def test_waiters_are_notified_in_request_order(loader, transport):
    gate = transport.gate("client/src/views/a.js")
    order: list[str] = []
    tasks = [
        asyncio.create_task(loader.load("views/a", lambda _v, tag=tag: order.append(tag)))
        for tag in ("first", "second", "third")
    ]
    await settle()
    gate.set()
    await asyncio.gather(*tasks)

    assert order == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_resolved_class_is_returned_without_suspending(loader, transport):
    first = await loader.load("views/a")
    received: list[object] = []

    coro = loader.load("views/a", received.append)
    with pytest.raises(StopIteration) as stop:
        coro.send(None)

    assert stop.value.value is first
    assert received == [first]
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_camel_case_name_maps_to_same_class(loader, transport):
    first = await loader.load("crm:views/detail")
    second = await loader.load("Crm:Views.Detail")

    assert first is second
    assert transport.calls == ["client/modules/crm/src/views/detail.js"]


@pytest.mark.asyncio
async def test_require_orders_results_by_request(loader, transport):
    gate = transport.gate("client/src/views/b.js")
    received: list[tuple] = []
    task = asyncio.create_task(
        loader.require(["views/b", "views/a"], lambda *values: received.append(values))
    )
    await settle()

    assert "views/a" in loader.registry
    assert received == []
    gate.set()
    values = await task

    assert [cls.__name__ for cls in received[0]] == ["B", "A"]
    assert values == list(received[0])


@pytest.mark.asyncio
async def test_require_without_subject_calls_back_immediately(loader, transport):
    received: list[tuple] = []

    coro = loader.require(None, lambda *args: received.append(args))
    with pytest.raises(StopIteration):
        coro.send(None)

    assert received == [()]
    assert transport.calls == []


@pytest.mark.asyncio
async def test_require_single_name_passes_through(loader):
    received: list[object] = []

    value = await loader.require("views/a", received.append)

    assert received == [value]
    assert value.__name__ == "A"


@pytest.mark.asyncio
async def test_require_aborts_join_on_fetch_failure(loader):
    received: list[tuple] = []
    errors: list[bool] = []

    result = await loader.require(
        ["views/a", "views/missing"],
        lambda *values: received.append(values),
        lambda: errors.append(True),
    )

    await settle()
    assert result is None
    assert received == []
    assert errors == [True]
    assert "views/a" in loader.registry


@pytest.mark.asyncio
async def test_definition_dependencies_are_loaded_first(loader, transport):
    c_class = await loader.load("views/c")

    assert [dep.__name__ for dep in c_class.deps] == ["A", "B"]
    assert set(transport.calls) == {
        "client/src/views/a.js",
        "client/src/views/b.js",
        "client/src/views/c.js",
    }


@pytest.mark.asyncio
async def test_fetch_failure_uses_error_callback(loader):
    received: list[object] = []
    errors: list[bool] = []

    result = await loader.load("views/missing", received.append, lambda: errors.append(True))

    assert result is None
    assert received == []
    assert errors == [True]


@pytest.mark.asyncio
async def test_fetch_failure_without_handler_raises(loader, transport):
    with pytest.raises(FetchError) as excinfo:
        await loader.load("views/missing")

    assert excinfo.value.path == "client/src/views/missing.js"
    await settle()
    assert loader.context.pending == {}

    transport.files["client/src/views/missing.js"] = _class_script("Late")
    assert (await loader.load("views/missing")).__name__ == "Late"
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_empty_name_raises_before_callbacks(loader, transport):
    received: list[object] = []

    with pytest.raises(ResolutionError):
        await loader.load("", received.append)

    assert received == []
    assert transport.calls == []


@pytest.mark.asyncio
async def test_cached_script_is_used_instead_of_transport(transport):
    cache = MemoryResourceCache()
    cache.set(CACHE_NAMESPACE, "views/cached", _class_script("Cached"))
    loader = Loader(transport, cache=cache)

    value = await loader.load("views/cached")

    assert value.__name__ == "Cached"
    assert transport.calls == []


@pytest.mark.asyncio
async def test_fetched_scripts_are_written_to_cache(transport):
    cache = MemoryResourceCache()
    loader = Loader(transport, cache=cache)

    await loader.load("views/a")

    assert cache.get(CACHE_NAMESPACE, "views/a") == transport.files["client/src/views/a.js"]


@pytest.mark.asyncio
async def test_bad_cached_module_is_evicted(transport):
    cache = MemoryResourceCache()
    cache.set(CACHE_NAMESPACE, "views/bad", "VALUE = 1\n")
    loader = Loader(transport, cache=cache)
    received: list[object] = []

    with pytest.raises(RegistrationError):
        await loader.load("views/bad", received.append)

    assert received == []
    assert cache.get(CACHE_NAMESPACE, "views/bad") is None
    assert "views/bad" not in loader.registry


@pytest.mark.asyncio
async def test_empty_factory_result_is_a_registration_error(transport):
    transport.files["client/src/views/empty.js"] = "define(lambda: None)\n"
    cache = MemoryResourceCache()
    loader = Loader(transport, cache=cache)

    with pytest.raises(RegistrationError):
        await loader.load("views/empty")

    assert cache.get(CACHE_NAMESPACE, "views/empty") is None


@pytest.mark.asyncio
async def test_definition_under_another_name_fails_the_load(loader, transport):
    transport.files["client/src/views/wrong.js"] = (
        "class Other:\n    pass\n\ndefine('views/other', None, lambda: Other)\n"
    )

    with pytest.raises(RegistrationError):
        await loader.load("views/wrong")

    assert "views/other" in loader.registry


@pytest.mark.asyncio
async def test_response_cache_replaces_persistent_cache(transport):
    cache = MemoryResourceCache()
    cache.set(CACHE_NAMESPACE, "views/a", "VALUE = 'stale'\n")
    response_cache = MemoryResponseCache("7")
    loader = Loader(
        transport,
        cache=cache,
        response_cache=response_cache,
        cache_timestamp="7",
        base_path="https://crm.example.com/",
    )

    value = await loader.load("views/a")

    assert value.__name__ == "A"
    url = "https://crm.example.com/client/src/views/a.js?r=7"
    assert transport.calls == [url]
    assert await response_cache.match(url) == transport.files["client/src/views/a.js"]
    assert cache.get(CACHE_NAMESPACE, "views/a") == "VALUE = 'stale'\n"


@pytest.mark.asyncio
async def test_response_cache_hit_skips_transport(transport):
    response_cache = MemoryResponseCache("7")
    await response_cache.put("client/src/views/x.js?r=7", _class_script("X"))
    loader = Loader(transport, response_cache=response_cache, cache_timestamp="7")

    value = await loader.load("views/x")

    assert value.__name__ == "X"
    assert transport.calls == []


@pytest.mark.asyncio
async def test_library_exports_are_returned_and_not_cached(transport):
    cache = MemoryResourceCache()
    loader = Loader(transport, cache=cache)
    loader.add_libs_config({"marked": {"path": "client/lib/marked.py", "exportsAs": "Marked"}})

    value = await loader.load("lib!marked")
    again = await loader.load("lib!marked")

    assert value == {"name": "marked"}
    assert again is value
    assert transport.calls == ["client/lib/marked.py"]
    assert cache.get(CACHE_NAMESPACE, "lib!marked") is None


@pytest.mark.asyncio
async def test_library_already_in_scope_is_not_fetched(loader, transport):
    loader.context.scope["Select"] = "preloaded"

    assert await loader.load("lib!Select") == "preloaded"
    assert transport.calls == []


@pytest.mark.asyncio
async def test_resources_are_loaded_once(loader, transport):
    first = await loader.load_resource("template", "record/edit")
    second = await loader.load("res!client/res/templates/record/edit.tpl")

    assert first == "<form></form>"
    assert second == first
    assert transport.calls == ["client/res/templates/record/edit.tpl"]


@pytest.mark.asyncio
async def test_static_define_registers_without_fetching(loader, transport):
    class Static:
        pass

    registered = await loader.define("views/static", None, lambda: Static)

    assert registered is Static
    assert await loader.load("views/static") is Static
    assert transport.calls == []


@pytest.mark.asyncio
async def test_static_define_requires_subject(loader):
    with pytest.raises(ResolutionError):
        await loader.define(lambda: object)


@pytest.mark.asyncio
async def test_load_script_registers_named_definitions(loader, transport):
    transport.files["client/lib/bundle.py"] = (
        "class Bundled:\n    pass\n\ndefine('views/bundled', None, lambda: Bundled)\n"
    )
    called: list[bool] = []

    await loader.load_script("client/lib/bundle.py", lambda: called.append(True))

    assert called == [True]
    assert loader.registry.get("views/bundled").__name__ == "Bundled"


@pytest.mark.asyncio
async def test_loader_instances_do_not_share_state(transport):
    first = Loader(transport)
    second = Loader(transport)

    await first.load("views/a")

    assert "views/a" in first.registry
    assert "views/a" not in second.registry


@pytest.mark.asyncio
async def test_resource_tags_share_one_memo_entry(loader, transport):
    tagged = await loader.load("template!record/edit")
    raw = await loader.load("res!client/res/templates/record/edit.tpl")
    aliased = await loader.load("text!client/res/templates/record/edit.tpl")

    assert tagged == raw == aliased == "<form></form>"
    assert transport.calls == ["client/res/templates/record/edit.tpl"]


@pytest.mark.asyncio
async def test_concurrent_resource_aliases_share_one_fetch(loader, transport):
    gate = transport.gate("client/res/templates/record/edit.tpl")
    tagged = asyncio.create_task(loader.load("template!record/edit"))
    raw = asyncio.create_task(loader.load("res!client/res/templates/record/edit.tpl"))
    await settle()
    gate.set()

    assert await asyncio.gather(tagged, raw) == ["<form></form>", "<form></form>"]
    assert transport.calls == ["client/res/templates/record/edit.tpl"]
    assert "res!client/res/templates/record/edit.tpl" in loader.context.loaded


@pytest.mark.asyncio
@pytest.mark.parametrize("script", ["1 / 0\n", "def (:\n"])
async def test_failing_cached_script_is_evicted(transport, script):
    cache = MemoryResourceCache()
    cache.set(CACHE_NAMESPACE, "views/broken", script)
    loader = Loader(transport, cache=cache)

    with pytest.raises((ZeroDivisionError, SyntaxError)):
        await loader.load("views/broken")

    assert cache.get(CACHE_NAMESPACE, "views/broken") is None
    assert "views/broken" not in loader.registry


@pytest.mark.asyncio
async def test_library_body_is_written_to_response_cache(transport):
    response_cache = MemoryResponseCache("7")
    loader = Loader(transport, response_cache=response_cache, cache_timestamp="7")
    loader.add_libs_config({"marked": {"path": "client/lib/marked.py", "exportsAs": "Marked"}})

    assert await loader.load("lib!marked") == {"name": "marked"}

    url = "client/lib/marked.py?r=7"
    assert transport.calls == [url]
    assert await response_cache.match(url) == transport.files["client/lib/marked.py"]


@pytest.mark.asyncio
async def test_libraries_sharing_a_path_return_their_own_exports(loader, transport):
    transport.files["client/lib/bundle.py"] = (
        "scope['First'] = 'first'\nscope['Second'] = 'second'\n"
    )
    loader.add_libs_config(
        {
            "first": {"path": "client/lib/bundle.py", "exportsAs": "First"},
            "second": {"path": "client/lib/bundle.py", "exportsAs": "Second"},
        }
    )
    gate = transport.gate("client/lib/bundle.py")
    first = asyncio.create_task(loader.load("lib!first"))
    second = asyncio.create_task(loader.load("lib!second"))
    await settle()
    gate.set()

    assert await asyncio.gather(first, second) == ["first", "second"]
    assert transport.calls == ["client/lib/bundle.py"]
