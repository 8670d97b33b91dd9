import asyncio
import threading
import time

from pdf_workbench.engine.guard import CompositeGuard


def test_runs_in_worker_thread():
    guard = CompositeGuard()
    main_thread = threading.get_ident()

    async def go():
        return await guard.run("doc", threading.get_ident)

    generation, worker_thread = asyncio.run(go())
    assert generation == 1
    assert worker_thread != main_thread


def test_same_document_requests_do_not_overlap():
    guard = CompositeGuard()
    active = []
    overlaps = []

    def work(tag):
        active.append(tag)
        if len(active) > 1:
            overlaps.append(tuple(active))
        time.sleep(0.05)
        active.remove(tag)
        return tag

    async def go():
        return await asyncio.gather(guard.run("doc", work, "a"), guard.run("doc", work, "b"))

    results = asyncio.run(go())
    assert overlaps == []
    assert [r for _, r in results] == ["a", "b"]
    assert [g for g, _ in results] == [1, 2]
    assert not guard.is_current("doc", 1)
    assert guard.is_current("doc", 2)


def test_generations_are_per_document():
    guard = CompositeGuard()

    async def go():
        await guard.run("a", len, "xyz")
        await guard.run("a", len, "xyz")
        return await guard.run("b", len, "xyz")

    generation, result = asyncio.run(go())
    assert (generation, result) == (1, 3)
    assert guard.generation("a") == 2


def test_forget_drops_document_state():
    guard = CompositeGuard()

    async def go():
        await guard.run("a", len, "x")
        await guard.run("b", len, "x")

    asyncio.run(go())
    guard.forget("a")
    guard.forget("never-seen")
    assert guard.generation("a") == 0
    assert guard.generation("b") == 1
    assert "a" not in guard._locks and "b" in guard._locks
