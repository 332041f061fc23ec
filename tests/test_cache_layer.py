# tests/test_cache_layer.py

from __future__ import annotations

import asyncio
import gc
from datetime import datetime, timezone

import pytest

from tasklist.cache.layer import UserTaskCache
from tasklist.core.errors import InternalError, NotFoundError, ValidationError
from tasklist.models import TaskRead, TaskStatus

from .fakes import FakeClock


def make_task(task_id: str, user_id: str = "u1", title: str = "t") -> TaskRead:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return TaskRead(
        id=task_id,
        user_id=user_id,
        title=title,
        status=TaskStatus.TODO,
        created_at=now,
        updated_at=now,
    )


def test_missing_entry_is_a_miss(cache: UserTaskCache) -> None:
    assert cache.get("u1") is None
    assert cache.get_stats() == {"cache_hits": 0, "cache_misses": 1, "cache_size": 0}


def test_put_then_get_returns_same_snapshot(cache: UserTaskCache) -> None:
    tasks = [make_task("a"), make_task("b")]
    cache.put("u1", tasks)

    snapshot = cache.get("u1")

    assert snapshot == tuple(tasks)
    assert isinstance(snapshot, tuple)
    assert cache.get_stats()["cache_hits"] == 1


def test_snapshot_is_detached_from_callers_list(cache: UserTaskCache) -> None:
    tasks = [make_task("a")]
    cache.put("u1", tasks)
    tasks.append(make_task("b"))

    assert [t.id for t in cache.get("u1")] == ["a"]


def test_entry_expires_lazily_after_ttl(cache: UserTaskCache, clock: FakeClock) -> None:
    cache.put("u1", [make_task("a")])

    clock.advance(29)
    assert cache.get("u1") is not None

    clock.advance(2)
    assert cache.get("u1") is None
    # expired entries are ignored, not swept
    assert len(cache) == 1
    assert cache.get_stats()["cache_misses"] == 1


def test_entry_is_invalid_exactly_at_ttl(cache: UserTaskCache, clock: FakeClock) -> None:
    cache.put("u1", [])
    clock.advance(30)
    assert cache.get("u1") is None


def test_put_supersedes_previous_entry(cache: UserTaskCache, clock: FakeClock) -> None:
    cache.put("u1", [make_task("a")])
    clock.advance(31)
    cache.put("u1", [make_task("b")])

    assert [t.id for t in cache.get("u1")] == ["b"]
    assert len(cache) == 1


def test_empty_snapshot_is_a_hit(cache: UserTaskCache) -> None:
    cache.put("u1", [])
    assert cache.get("u1") == ()
    assert cache.get_stats()["cache_hits"] == 1


def test_invalidate_is_idempotent(cache: UserTaskCache) -> None:
    cache.invalidate("nobody")

    cache.put("u1", [make_task("a")])
    cache.invalidate("u1")
    cache.invalidate("u1")

    assert cache.get("u1") is None
    assert len(cache) == 0


def test_entries_are_per_user(cache: UserTaskCache) -> None:
    cache.put("u1", [make_task("a", user_id="u1")])
    cache.put("u2", [make_task("b", user_id="u2")])

    cache.invalidate("u1")

    assert cache.get("u1") is None
    assert [t.id for t in cache.get("u2")] == ["b"]


def test_peek_does_not_count(cache: UserTaskCache) -> None:
    assert cache.peek("u1") is None
    cache.put("u1", [])
    assert cache.peek("u1") == ()
    assert cache.get_stats()["cache_hits"] == 0
    assert cache.get_stats()["cache_misses"] == 0


def test_lock_is_shared_per_user() -> None:
    cache = UserTaskCache(clock=FakeClock())
    assert cache.lock("u1") is cache.lock("u1")
    assert cache.lock("u1") is not cache.lock("u2")


@pytest.mark.asyncio
async def test_held_lock_survives_many_other_users(cache: UserTaskCache) -> None:
    held = cache.lock("u1")
    async with held:
        for i in range(20_000):
            async with cache.lock(f"other-{i}"):
                pass

        assert cache.lock("u1") is held
        assert cache.lock("u1").locked()

    assert not held.locked()


@pytest.mark.asyncio
async def test_waiters_share_the_lock_after_registry_churn(cache: UserTaskCache) -> None:
    order: list[str] = []
    holding = asyncio.Event()
    release = asyncio.Event()

    async def first() -> None:
        async with cache.mutation("u1"):
            holding.set()
            await release.wait()
            order.append("first")

    async def second() -> None:
        async with cache.mutation("u1"):
            order.append("second")

    t1 = asyncio.create_task(first())
    await holding.wait()
    for i in range(20_000):
        cache.lock(f"other-{i}")
    t2 = asyncio.create_task(second())
    await asyncio.sleep(0)
    # second must be queued on the held lock, not a fresh one
    assert order == []
    release.set()
    await asyncio.gather(t1, t2)

    assert order == ["first", "second"]


def test_idle_locks_are_released() -> None:
    cache = UserTaskCache(clock=FakeClock())
    for i in range(100):
        cache.lock(f"u{i}")
    gc.collect()

    assert len(cache._locks) == 0


@pytest.mark.asyncio
async def test_mutation_invalidates_on_success(cache: UserTaskCache) -> None:
    cache.put("u1", [make_task("a")])

    async with cache.mutation("u1"):
        # entry still present while the mutation is in flight
        assert cache.peek("u1") is not None

    assert cache.peek("u1") is None


@pytest.mark.asyncio
async def test_mutation_keeps_entry_when_nothing_was_written(cache: UserTaskCache) -> None:
    cache.put("u1", [make_task("a")])

    with pytest.raises(NotFoundError):
        async with cache.mutation("u1"):
            raise NotFoundError("task not found")
    with pytest.raises(ValidationError):
        async with cache.mutation("u1"):
            raise ValidationError("bad status")

    assert cache.peek("u1") is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [InternalError("Storage timed out"), RuntimeError("boom")])
async def test_mutation_drops_entry_when_outcome_unknown(
    cache: UserTaskCache, exc: Exception
) -> None:
    cache.put("u1", [make_task("a")])

    with pytest.raises(type(exc)):
        async with cache.mutation("u1"):
            raise exc

    assert cache.peek("u1") is None
    assert not cache.lock("u1").locked()


@pytest.mark.asyncio
async def test_mutation_invalidates_when_cancelled(cache: UserTaskCache) -> None:
    cache.put("u1", [make_task("a")])
    entered = asyncio.Event()

    async def mutate() -> None:
        async with cache.mutation("u1"):
            entered.set()
            await asyncio.sleep(10)

    task = asyncio.create_task(mutate())
    await entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert cache.peek("u1") is None
    assert not cache.lock("u1").locked()


@pytest.mark.asyncio
async def test_mutation_serializes_same_user(cache: UserTaskCache) -> None:
    order: list[str] = []
    first_inside = asyncio.Event()
    release_first = asyncio.Event()

    async def first() -> None:
        async with cache.mutation("u1"):
            order.append("first-start")
            first_inside.set()
            await release_first.wait()
            order.append("first-end")

    async def second() -> None:
        async with cache.mutation("u1"):
            order.append("second")

    t1 = asyncio.create_task(first())
    await first_inside.wait()
    t2 = asyncio.create_task(second())
    await asyncio.sleep(0)
    release_first.set()
    await asyncio.gather(t1, t2)

    assert order == ["first-start", "first-end", "second"]


@pytest.mark.asyncio
async def test_mutation_for_other_user_does_not_wait(cache: UserTaskCache) -> None:
    async with cache.lock("u1"):
        async with cache.mutation("u2"):
            pass
