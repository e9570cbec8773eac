import dataclasses
import logging
import typing

import anyio
from anyio import TASK_STATUS_IGNORED
from anyio.abc import TaskStatus

from ..exceptions import Error
from ..tasks import Task
from ..resources import get_resource, is_same_version
from . import CreateEvent, UpdateEvent, DeleteEvent
from .index import Indexer


log = logging.getLogger(__name__)


@dataclasses.dataclass(eq=False)
class Informer(Task):
    """Lists and watches one resource type and dispatches the changes as
    events to all registered streams.

    The informer keeps the last seen version of every object in its store,
    which allows it to hand out the old and new object with every update.
    """

    client: object
    resource: type
    namespace: str = None
    store: Indexer = None
    name: str = None
    resync_after: float = None
    retry_delay: float = 1
    timeout: float = 60
    transformer: typing.Callable = None
    resource_version: str = None

    @property
    def api_version(self) -> str:
        return self.resource.apiVersion

    @property
    def kind(self) -> str:
        return self.resource.kind

    def __post_init__(self):
        super().__init__()
        self.resource = get_resource(self.resource)
        if self.store is None:
            self.store = Indexer()
        self._task_group = None  # Main taskgroup
        self._streams = {}

    def __hash__(self):
        return hash((self.api_version, self.kind, self.namespace, self.name))

    def __repr__(self):
        _out = []
        if self.name is not None:
            _out.append(self.name)
        _out.append(f'{self.api_version}/{self.kind}')
        if self.namespace is not None:
            _out.append(self.namespace)
        if self.resource_version:
            _out.append(self.resource_version)
        _s = ' '.join(_out)
        return f'<Informer {_s}>'

    def add_stream(self, stream, key=None):
        if key is None:
            key = stream
        self._streams[key] = stream

    def remove_stream(self, stream=None, key=None):
        if key is None:
            key = stream
        if key in self._streams:
            del self._streams[key]

    def purge_streams(self):
        for stream in self._streams.values():
            stream.close()
        self._streams.clear()

    async def _dispatch(self, event):
        """Dispatch the event to all our streams, in the order received."""
        # We iterate over a list of keys because the dict may change
        # while we're iterating over it.
        for key in list(self._streams.keys()):
            try:
                await self._streams[key].send(event)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                log.debug('removing closed stream %r from %s', key, self)
                self.remove_stream(key=key)

    async def _add_or_update(self, obj):
        old = self.store.find(obj)
        if old is None:
            self.store.put(obj)
            await self._dispatch(CreateEvent(obj))
        elif not is_same_version(obj, old):
            self.store.put(obj)
            await self._dispatch(UpdateEvent(old, obj))

    async def _delete(self, obj):
        self.store.pop(obj)
        await self._dispatch(DeleteEvent(obj))

    async def _list(self):
        log.debug('start listing %s/%s', self.api_version, self.kind)
        with anyio.fail_after(self.timeout):
            objects = await self.client.list(self.resource, namespace=self.namespace)
        self.resource_version = objects.resourceVersion
        listed = set()
        for obj in objects:
            listed.add(self.store.key_func(obj))
            await self._process_event('LISTED', obj)
        # Objects that vanished while we were not watching.
        for key in list(self.store.keys()):
            if key not in listed:
                await self._delete(self.store[key])
        log.debug(
            'done listing %s/%s %s',
            self.api_version,
            self.kind,
            self.resource_version,
        )

    async def _watch(self):
        log.debug(
            'start watching %s/%s %s',
            self.api_version,
            self.kind,
            self.resource_version,
        )
        async for event, obj in self.client.watch(
            self.resource,
            namespace=self.namespace,
            resource_version=self.resource_version,
        ):
            await self._process_event(event, obj)
            self.resource_version = obj.metadata.resourceVersion

    async def _listwatch(self):
        while True:
            try:
                # Initial listing.
                await self._list()

                # We are running and our cache is synced.
                self._running.set()

                # Continue watching for changes.
                if self.resync_after is None:
                    await self._watch()
                else:
                    with anyio.move_on_after(self.resync_after) as scope:
                        await self._watch()

                    if scope.cancelled_caught:
                        log.debug(
                            'resyncing %s/%s %s',
                            self.api_version,
                            self.kind,
                            self.resource_version,
                        )
                        continue

                log.debug('watch of %s ended, relisting', self)

            except (Error, TimeoutError) as e:
                log.error('listwatch of %s failed: %s', self, e)
                await anyio.sleep(self.retry_delay)

    async def _process_event(self, event, obj):
        if callable(self.transformer):
            obj = self.transformer(obj)
        match event:
            case 'ADDED' | 'LISTED' | 'MODIFIED':
                await self._add_or_update(obj)
            case 'DELETED':
                await self._delete(obj)
            case _:
                log.warning('ignoring unknown event %r for %r', event, obj)

    def stop(self):
        if self._task_group:
            self._task_group.cancel_scope.cancel()

    async def __call__(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('starting %s', self)

        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg

                try:
                    tg.start_soon(self._listwatch)

                    await self
                    log.info('started %s', self)
                    task_status.started()

                    # Wait until told otherwise.
                    await self._stop.wait()

                except anyio.get_cancelled_exc_class():
                    log.debug('canceled %s', self)
                    raise

                finally:
                    log.debug('stopping %s', self)
                    self.purge_streams()

        finally:
            log.info('stopped %s', self)
