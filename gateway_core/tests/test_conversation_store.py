import asyncio

import pytest

from gateway_core.infrastructure.storage.memory_store import InMemoryConversationStore


def test_append_trims_to_max_entries():
    store = InMemoryConversationStore(max_entries=20)

    async def scenario():
        for i in range(11):
            await store.append("k", f"u{i}", f"a{i}")
        return await store.read("k")

    turns = asyncio.run(scenario())
    assert len(turns) == 20
    assert (turns[0].role, turns[0].content) == ("user", "u1")
    assert (turns[-1].role, turns[-1].content) == ("assistant", "a10")


def test_clear_then_read_is_empty():
    store = InMemoryConversationStore(max_entries=4)

    async def scenario():
        await store.append("k", "hi", "hello")
        await store.clear("k")
        await store.clear("missing")
        return await store.read("k")

    assert asyncio.run(scenario()) == ()


def test_read_is_idempotent_snapshot():
    store = InMemoryConversationStore(max_entries=4)

    async def scenario():
        await store.append("k", "u0", "a0")
        first = await store.read("k")
        second = await store.read("k")
        await store.append("k", "u1", "a1")
        return first, second, await store.read("k")

    first, second, after = asyncio.run(scenario())
    assert first == second
    assert len(first) == 2
    assert len(after) == 4
    assert asyncio.run(store.read("unknown")) == ()


def test_concurrent_appends_keep_pairs_together():
    store = InMemoryConversationStore(max_entries=20)

    async def one(i):
        await asyncio.sleep(0)
        await store.append("shared", f"u{i}", f"a{i}")

    async def scenario():
        await asyncio.gather(*(one(i) for i in range(30)))
        return await store.read("shared")

    turns = asyncio.run(scenario())
    assert len(turns) == 20
    for user, assistant in zip(turns[0::2], turns[1::2]):
        assert user.role == "user"
        assert assistant.role == "assistant"
        assert user.content[1:] == assistant.content[1:]


def test_keys_are_independent():
    store = InMemoryConversationStore(max_entries=2)

    async def scenario():
        await store.append("a", "u", "x")
        await store.append("b", "u", "y")
        await store.clear("a")
        return await store.read("a"), await store.read("b")

    a, b = asyncio.run(scenario())
    assert a == ()
    assert b[-1].content == "y"
    assert store.keys() == ("b",)


def test_max_entries_must_be_even():
    with pytest.raises(ValueError):
        InMemoryConversationStore(max_entries=3)
    with pytest.raises(ValueError):
        InMemoryConversationStore(max_entries=0)


def test_evict_idle():
    now = [100.0]
    store = InMemoryConversationStore(max_entries=4, clock=lambda: now[0])

    async def scenario():
        await store.append("old", "u", "a")
        now[0] = 200.0
        await store.append("fresh", "u", "a")
        now[0] = 250.0
        evicted = await store.evict_idle(100.0)
        return evicted, await store.read("old"), await store.read("fresh")

    evicted, old, fresh = asyncio.run(scenario())
    assert evicted == 1
    assert old == ()
    assert len(fresh) == 2


def test_closed_store_rejects_writes():
    store = InMemoryConversationStore(max_entries=2)

    async def scenario():
        await store.close()
        await store.append("k", "u", "a")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())


def test_evict_idle_releases_locks():
    now = [0.0]
    store = InMemoryConversationStore(max_entries=2, clock=lambda: now[0])

    async def scenario():
        for i in range(1000):
            await store.append(f"user-{i}", "u", "a")
        await store.append("kept", "u", "a")
        now[0] = 50.0
        await store.append("kept", "u2", "a2")
        now[0] = 100.0
        return await store.evict_idle(60.0)

    assert asyncio.run(scenario()) == 1000
    assert store.keys() == ("kept",)
    assert list(store._locks) == ["kept"]


def test_clear_releases_lock():
    store = InMemoryConversationStore(max_entries=2)

    async def scenario():
        await store.append("k", "u", "a")
        await store.clear("k")
        await store.clear("never-written")

    asyncio.run(scenario())
    assert store._locks == {}
