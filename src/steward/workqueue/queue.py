import logging

import anyio
from anyio import TASK_STATUS_IGNORED, CancelScope
from anyio.abc import TaskStatus

from ..exceptions import QueueShutDown
from ..tasks import Task

from .limiters import default_rate_limiter


log = logging.getLogger(__name__)


class Queue:
    def __init__(self):
        self._items = {}

    def touch(self, item):
        self._items[item] = self._items[item] + 1

    def push(self, item):
        self._items[item] = 0

    def pop(self):
        k = next(iter(self._items))
        del self._items[k]
        return k

    def clear(self):
        self._items.clear()

    def __contains__(self, item):
        return item in self._items

    def __len__(self):
        return len(self._items)


class Workqueue(Task):
    """A deduplicating, rate limited work queue.

    - An item is never queued twice, adding an already queued item is a
      no-op.
    - An item that is added while it is being processed is queued again
      once it is marked as done. The same item is therefore never handed
      out to two workers at the same time.
    - Delayed items only become visible after their delay has passed. There
      is at most one pending delay per item, the earliest one wins.
    - Items added before the queue runs are buffered and added on start.
    """

    def __init__(self, rate_limiter=None):
        super().__init__()
        if rate_limiter is None:
            rate_limiter = default_rate_limiter()
        self._rate_limiter = rate_limiter
        self._buffer = []
        self._delayed_buffer = []
        self._queue = Queue()
        self._delayed = {}
        self._timers = {}
        self._processing = {}
        self._dirty = {}
        self._condition = anyio.Condition()
        self._task_group = None
        self._shutting_down = False
        self._draining = False

    def __len__(self):
        return len(self._queue)

    async def length(self):
        async with self._condition:
            return len(self._queue)

    def __repr__(self):
        length = len(self)
        delayed = len(self._delayed)
        dirty = len(self._dirty)
        processing = len(self._processing)
        if self.is_running:
            return f'<Workqueue queued: {length}, delayed: {delayed}, dirty: {dirty}, processing: {processing}>'
        else:
            buffered = len(self._buffer) + len(self._delayed_buffer)
            return f'<Workqueue queued: {length}, delayed: {delayed}, dirty: {dirty}, processing: {processing} buffered: {buffered}>'

    @property
    def is_shutting_down(self):
        return self._shutting_down

    def is_processing(self, item):
        return item in self._processing

    def is_delayed(self, item):
        return item in self._delayed

    async def _add(self, item):
        """Add marks item as needing processing."""
        async with self._condition:
            if self._shutting_down:
                log.debug('ignoring %r, queue is shutting down', item)
                return
            if item in self._dirty:
                # The same item is added again before it is processed.
                # call the touch function for queues who care about it
                # to e.g. reset its priority
                if item not in self._processing:
                    self._queue.touch(item)
            else:
                self._dirty[item] = None
                if item not in self._processing:
                    self._queue.push(item)
                    self._condition.notify()

    async def add(self, item):
        """Add marks item as needing processing."""
        if self.is_running:
            await self._add(item)
        else:
            # If the queue has not yet been started we buffer items
            # and add them during startup.
            self._buffer.append(item)

    async def get(self):
        """Get blocks until it can return an item to be processed.
        Raises QueueShutDown once the queue is shut down."""
        async with self._condition:
            while len(self) == 0 and not self._shutting_down:
                await self._condition.wait()
            if self._shutting_down:
                raise QueueShutDown('workqueue is shut down')
            item = self._queue.pop()
            self._processing[item] = None
            del self._dirty[item]
            return item

    async def done(self, item):
        """Done marks item as done processing, and if it has been marked as dirty
        again while it was being processed, it will be re-added to the queue for
        re-processing.
        """
        async with self._condition:
            self._processing.pop(item, None)
            if item in self._dirty and not self._shutting_down:
                self._queue.push(item)
                self._condition.notify()
            if not self._processing:
                # Wake up anyone waiting for a drain.
                self._condition.notify_all()

    async def _add_after(self, item, delay, scope):
        with scope:
            await anyio.sleep(delay)
            # Only forget about the timer if it is still ours.
            if self._timers.get(item) is scope:
                del self._timers[item]
                self._delayed.pop(item, None)
            await self.add(item)

    async def add_after(self, item, delay):
        """Add the item after the given delay in seconds."""
        if delay is None or delay <= 0:
            await self.add(item)
            return
        if not self.is_running:
            self._delayed_buffer.append((item, delay))
            return
        if self._shutting_down or self._draining:
            log.debug('ignoring delayed %r, queue is shutting down', item)
            return
        deadline = anyio.current_time() + delay
        existing = self._delayed.get(item, None)
        if existing is not None:
            if existing <= deadline:
                # An earlier timer is already pending.
                return
            self._timers.pop(item).cancel()
        self._delayed[item] = deadline
        scope = CancelScope()
        self._timers[item] = scope
        self._task_group.start_soon(self._add_after, item, delay, scope)

    async def add_rate_limited(self, item):
        """Add the item after the rate limiter says it's ok."""
        delay = self._rate_limiter.delay(item)
        log.debug('rate limited %r by %.3fs', item, delay)
        await self.add_after(item, delay)

    async def forget(self, item):
        """Forget resets the rate limiter for the item. It does not remove
        the item from the queue."""
        self._rate_limiter.forget(item)

    async def num_requeues(self, item):
        return self._rate_limiter.count(item)

    def _cancel_timers(self):
        for scope in self._timers.values():
            scope.cancel()
        self._timers.clear()
        self._delayed.clear()

    async def shutdown(self):
        """Shut the queue down, abandoning all queued and delayed items.
        Workers blocked in `get` receive QueueShutDown."""
        async with self._condition:
            log.debug('shutting down %r', self)
            self._shutting_down = True
            self._cancel_timers()
            self._queue.clear()
            self._dirty.clear()
            self._condition.notify_all()
        self._stop.set()

    async def shutdown_with_drain(self):
        """Stop accepting delayed items and wait until all items currently
        being processed are done, then shut down."""
        async with self._condition:
            self._draining = True
            self._cancel_timers()
            while self._processing:
                await self._condition.wait()
        await self.shutdown()

    def stop(self):
        self._stop.set()

    async def __call__(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg

                # Add any buffered items.
                while self._buffer:
                    item = self._buffer.pop(0)
                    await self._add(item)

                self._running.set()
                task_status.started()

                while self._delayed_buffer:
                    item, delay = self._delayed_buffer.pop(0)
                    await self.add_after(item, delay)

                await self._stop.wait()
                tg.cancel_scope.cancel()
        finally:
            self._cancel_timers()
