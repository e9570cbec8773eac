import anyio
import pytest

from steward import ItemExponentialFailureRateLimiter, QueueShutDown, Workqueue


pytestmark = pytest.mark.anyio


async def test_add_deduplicates():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add('a')
        await queue.add('a')
        await queue.add('b')
        assert len(queue) == 2
        assert await queue.get() == 'a'
        assert await queue.get() == 'b'
        assert len(queue) == 0
        await queue.shutdown()


async def test_item_added_while_processing_is_requeued_on_done():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add('a')
        item = await queue.get()
        assert queue.is_processing(item)

        # Not handed out again while it is being processed.
        await queue.add('a')
        await queue.add('a')
        assert len(queue) == 0

        await queue.done('a')
        assert not queue.is_processing('a')
        assert len(queue) == 1
        assert await queue.get() == 'a'
        await queue.done('a')
        assert len(queue) == 0
        await queue.shutdown()


async def test_items_added_before_start_are_buffered():
    queue = Workqueue()
    await queue.add('a')
    await queue.add('a')
    await queue.add_after('b', 0.01)
    assert len(queue) == 0
    async with anyio.create_task_group() as tg:
        await tg.start(queue)
        assert len(queue) == 1
        with anyio.fail_after(1):
            assert await queue.get() == 'a'
            assert await queue.get() == 'b'
        await queue.shutdown()


async def test_add_after_keeps_earliest_deadline():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)

        await queue.add_after('a', 60)
        await queue.add_after('a', 0.01)
        assert queue.is_delayed('a')
        with anyio.fail_after(1):
            assert await queue.get() == 'a'
        await queue.done('a')
        assert not queue.is_delayed('a')

        await queue.add_after('b', 0.01)
        await queue.add_after('b', 60)
        with anyio.fail_after(1):
            assert await queue.get() == 'b'
        await queue.done('b')
        assert not queue.is_delayed('b')
        await queue.shutdown()


async def test_add_after_without_delay_adds_immediately():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add_after('a', 0)
        assert len(queue) == 1
        assert not queue.is_delayed('a')
        await queue.shutdown()


async def test_rate_limited_requeues_are_counted_until_forgotten():
    limiter = ItemExponentialFailureRateLimiter(base_delay=0.001, max_delay=0.002)
    async with anyio.create_task_group() as tg:
        queue = Workqueue(rate_limiter=limiter)
        await tg.start(queue)
        for _ in range(3):
            await queue.add_rate_limited('a')
        assert await queue.num_requeues('a') == 3
        with anyio.fail_after(1):
            assert await queue.get() == 'a'
        await queue.forget('a')
        assert await queue.num_requeues('a') == 0
        await queue.done('a')
        await queue.shutdown()


async def test_shutdown_wakes_blocked_getters():
    results = []
    queue = Workqueue()

    async def worker():
        try:
            await queue.get()
        except QueueShutDown:
            results.append('shut down')

    async with anyio.create_task_group() as tg:
        await tg.start(queue)
        tg.start_soon(worker)
        tg.start_soon(worker)
        await anyio.sleep(0.05)
        await queue.shutdown()

    assert results == ['shut down', 'shut down']


async def test_shutdown_abandons_queued_and_delayed_items():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add('a')
        await queue.add_after('b', 60)
        await queue.shutdown()

        assert queue.is_shutting_down
        assert len(queue) == 0
        assert not queue.is_delayed('b')
        await queue.add('c')
        assert len(queue) == 0
        with pytest.raises(QueueShutDown):
            await queue.get()


async def test_shutdown_with_drain_waits_for_processing():
    done = []

    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add('a')
        item = await queue.get()

        async def finish():
            await anyio.sleep(0.05)
            done.append(item)
            await queue.done(item)

        tg.start_soon(finish)
        with anyio.fail_after(1):
            await queue.shutdown_with_drain()
        assert done == ['a']
        assert not queue.is_processing('a')
        assert queue.is_shutting_down


async def test_shutdown_with_drain_refuses_delayed_items():
    async with anyio.create_task_group() as tg:
        queue = Workqueue()
        await tg.start(queue)
        await queue.add('a')
        item = await queue.get()

        async def finish():
            await anyio.sleep(0.05)
            # A retry scheduled by the last in-flight item is dropped.
            await queue.add_rate_limited(item)
            await queue.add_after('b', 0.01)
            assert not queue.is_delayed(item)
            assert not queue.is_delayed('b')
            await queue.done(item)

        tg.start_soon(finish)
        with anyio.fail_after(1):
            await queue.shutdown_with_drain()
        assert queue.is_shutting_down
        assert len(queue) == 0
