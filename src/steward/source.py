import dataclasses
import logging
import math
import typing

import anyio
from anyio import TASK_STATUS_IGNORED
from anyio.abc import TaskStatus

from .tasks import Task
from .invocation import invoke
from .predicates import evaluate


__all__ = [
    'EventSource',
]

log = logging.getLogger(__name__)


@dataclasses.dataclass(eq=False)
class EventSource(Task):
    """Turns the events of one watched resource type into requests.

    Events are received from informers through a stream, filtered with
    the predicates, mapped to requests with the handler and added to the
    queue. A handler failing to map an event is logged and the event is
    dropped, it never stops the processing of further events.
    """

    queue: object
    resource: type
    handler: typing.Callable
    kwargs: dict = None
    predicates: typing.List[typing.Callable] = None

    def __post_init__(self):
        Task.__init__(self)
        self.kwargs = self.kwargs or {}
        self.predicates = self.predicates or []
        self._task_group = None  # Main taskgroup
        self._informer_streams = {}
        self.tx, self.rx = anyio.create_memory_object_stream(math.inf)

    def __repr__(self):
        handler = getattr(self.handler, '__name__', self.handler)
        return f'<{self.__class__.__name__} {self.resource.apiVersion}/{self.resource.kind} {handler}>'

    @property
    def stream(self):
        """A new stream that feeds events into this source."""
        return self.tx.clone()

    async def handle_event(self, event):
        log.debug('received event: %s', event)
        try:
            if not await evaluate(self.predicates, event):
                log.debug('predicate prevented event: %r', event)
                return
            requests = await invoke(self.handler, event, **self.kwargs)
            for request in requests or []:
                await self.queue.add(request)
        except Exception:
            log.exception('failed to process %r, dropping it', event)

    async def event_stream_handler(self):
        async with self.rx:
            async for event in self.rx:
                await self.handle_event(event)

    def stop(self):
        if self._task_group:
            self._task_group.cancel_scope.cancel()

    def add_informer(self, informer):
        # Create a stream dedicated for the given informer.
        stream = self.stream
        self._informer_streams[informer] = stream
        informer.add_stream(stream, key=self)

    async def __call__(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('starting %s', self)

        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg

                try:
                    tg.start_soon(self.event_stream_handler)

                    log.debug('started %s', self)
                    # Inform any awaiters that we are ready.
                    self._running.set()
                    task_status.started()

                    # Wait until told otherwise.
                    await self._stop.wait()

                except anyio.get_cancelled_exc_class():
                    log.debug('canceled %s', self)
                    raise

                finally:
                    log.debug('stopping %s', self)
                    # Remove our streams from the informers to which we added them.
                    for informer, stream in self._informer_streams.items():
                        informer.remove_stream(key=self)
                        stream.close()

        finally:
            log.debug('stopped %s', self)
