import collections
import copy
import dataclasses
import itertools
import logging
import math
import typing
import uuid

import anyio
import anyio.lowlevel

from ..cache.index import Indexer, index_by_owner
from ..exceptions import (
    AlreadyExists,
    Conflict,
    ObjectNotFound,
    ResourceExpired,
)
from ..resources import (
    get_resource,
    now,
    ObjectList,
    resource_key,
)
from .client import Client


__all__ = [
    'Action',
    'MemoryClient',
]

log = logging.getLogger(__name__)


MUTATING_VERBS = ('create', 'update', 'update_status', 'delete')


@dataclasses.dataclass
class Action:
    """A call made against the MemoryClient, recorded for inspection."""

    verb: str
    resource: type
    name: str
    namespace: str = None

    @property
    def is_mutating(self):
        return self.verb in MUTATING_VERBS


@dataclasses.dataclass
class _Reaction:
    verb: str
    exception: Exception
    resource: type = None
    times: int = 1


@dataclasses.dataclass(eq=False)
class _Watcher:
    key: tuple
    namespace: str
    stream: typing.Any


class MemoryClient(Client):
    """An object store living in memory.

    Behaves like a kubernetes api server for the parts the engine relies on:
    - every write bumps a store wide resourceVersion and writes carrying a
      stale resourceVersion are rejected with `Conflict`
    - `metadata.generation` is incremented when the spec changes or the
      object is marked for deletion
    - objects with finalizers are only marked for deletion and disappear
      once their last finalizer is removed
    - deleting an object also deletes all objects that reference it in
      their ownerReferences (garbage collection)
    - watches replay changes after a given resourceVersion and then follow
      all changes. Only the last `history_size` changes are kept, older
      versions raise `ResourceExpired`

    Every call is recorded in `actions` and errors can be injected with
    `inject_error`.
    """

    def __init__(self, history_size=1000):
        self._stores = {}
        self._version = 0
        # Changes kept for watches that resume from a resourceVersion.
        self._history = collections.deque(maxlen=history_size)
        self._expired_version = 0
        self._watchers = []
        self._reactions = []
        self.actions = []

    def __repr__(self):
        counts = {f'{k[0]}/{k[1]}': len(v) for k, v in self._stores.items()}
        return f'<MemoryClient version: {self._version} objects: {counts}>'

    @property
    def resource_version(self):
        return str(self._version)

    def _store(self, resource):
        key = resource_key(resource)
        try:
            return self._stores[key]
        except KeyError:
            store = self._stores[key] = Indexer(indexers={'owner': index_by_owner})
            return store

    def _next_version(self):
        self._version += 1
        return str(self._version)

    @staticmethod
    def _key(name, namespace):
        if namespace is not None:
            return f'{namespace}/{name}'
        return name

    def mutating_actions(self, verb=None):
        return [
            action for action in self.actions
            if action.is_mutating and (verb is None or action.verb == verb)
        ]

    def clear_actions(self):
        self.actions.clear()

    def inject_error(self, verb, exception, resource=None, times=1):
        """Make the next `times` calls of `verb` raise the given exception."""
        if resource is not None:
            resource = get_resource(resource)
        self._reactions.append(_Reaction(verb, exception, resource, times))

    async def _call(self, verb, resource, name, namespace):
        # Every call is a suspension point, like a network call would be.
        await anyio.lowlevel.checkpoint()
        resource = get_resource(resource)
        self.actions.append(Action(verb, resource, name, namespace))
        for reaction in self._reactions:
            if reaction.verb == verb and reaction.resource in (None, resource):
                reaction.times -= 1
                if reaction.times <= 0:
                    self._reactions.remove(reaction)
                raise reaction.exception
        return resource

    def _emit(self, event_type, obj):
        key = resource_key(obj)
        if len(self._history) == self._history.maxlen:
            self._expired_version = self._history[0][0]
        self._history.append((self._version, key, event_type, copy.deepcopy(obj)))
        for watcher in list(self._watchers):
            if watcher.key != key:
                continue
            if watcher.namespace is not None and watcher.namespace != obj.metadata.namespace:
                continue
            try:
                watcher.stream.send_nowait((event_type, copy.deepcopy(obj)))
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                self._watchers.remove(watcher)

    def _get(self, resource, name, namespace):
        try:
            return self._store(resource)[self._key(name, namespace)]
        except KeyError as e:
            raise ObjectNotFound(resource, name, namespace) from e

    def _check_version(self, obj, existing):
        if obj.metadata.resourceVersion != existing.metadata.resourceVersion:
            raise Conflict(
                type(existing),
                existing.metadata.name,
                existing.metadata.namespace,
                message=(
                    f'resourceVersion {obj.metadata.resourceVersion} does not'
                    f' match {existing.metadata.resourceVersion}'
                ),
            )

    def _remove(self, obj):
        self._store(obj).pop(obj)
        obj.metadata.resourceVersion = self._next_version()
        log.debug('deleted %r', obj)
        self._emit('DELETED', obj)
        self._collect_garbage(obj.metadata.uid)

    def _mark_deleted(self, obj):
        if obj.metadata.finalizers:
            if obj.metadata.deletionTimestamp is None:
                obj.metadata.deletionTimestamp = now()
                obj.metadata.generation = (obj.metadata.generation or 0) + 1
                obj.metadata.resourceVersion = self._next_version()
                self._emit('MODIFIED', obj)
        else:
            self._remove(obj)

    def _collect_garbage(self, uid):
        for store in list(self._stores.values()):
            for child in store.by_index('owner', uid):
                log.debug('garbage collecting %r', child)
                self._mark_deleted(child)

    async def get(self, resource, name, namespace=None):
        resource = await self._call('get', resource, name, namespace)
        return copy.deepcopy(self._get(resource, name, namespace))

    async def list(self, resource, namespace=None, labels=None):
        resource = await self._call('list', resource, None, namespace)
        store = self._store(resource)
        items = []
        for obj in store.objects(namespace=namespace):
            if labels and any(
                obj.metadata.labels.get(k) != v for k, v in labels.items()
            ):
                continue
            items.append(copy.deepcopy(obj))
        return ObjectList(items, resource_version=self.resource_version)

    async def watch(self, resource, namespace=None, resource_version=None):
        resource = get_resource(resource)
        key = resource_key(resource)
        send, receive = anyio.create_memory_object_stream(math.inf)
        if resource_version is not None:
            if int(resource_version) < self._expired_version:
                raise ResourceExpired(
                    resource, None, namespace,
                    message=f'resourceVersion {resource_version} is too old',
                )
            for version, event_key, event_type, obj in self._history:
                if version <= int(resource_version) or event_key != key:
                    continue
                if namespace is not None and namespace != obj.metadata.namespace:
                    continue
                send.send_nowait((event_type, copy.deepcopy(obj)))
        watcher = _Watcher(key, namespace, send)
        self._watchers.append(watcher)
        try:
            async with receive:
                async for event_type, obj in receive:
                    yield event_type, obj
        finally:
            if watcher in self._watchers:
                self._watchers.remove(watcher)
            send.close()

    async def create(self, obj):
        resource = await self._call(
            'create', obj, obj.metadata.name, obj.metadata.namespace
        )
        store = self._store(resource)
        if obj.metadata.name is None:
            raise ValueError(f'can not create object without name: {obj!r}')
        if self._key(obj.metadata.name, obj.metadata.namespace) in store:
            raise AlreadyExists(resource, obj.metadata.name, obj.metadata.namespace)
        new = copy.deepcopy(obj)
        new.metadata.uid = str(uuid.uuid4())
        new.metadata.generation = 1
        new.metadata.creationTimestamp = now()
        new.metadata.deletionTimestamp = None
        new.metadata.resourceVersion = self._next_version()
        store.put(new)
        log.debug('created %r', new)
        self._emit('ADDED', new)
        return copy.deepcopy(new)

    async def update(self, obj):
        resource = await self._call(
            'update', obj, obj.metadata.name, obj.metadata.namespace
        )
        existing = self._get(resource, obj.metadata.name, obj.metadata.namespace)
        self._check_version(obj, existing)
        new = copy.deepcopy(existing)
        for name in ('labels', 'annotations', 'finalizers', 'ownerReferences'):
            setattr(new.metadata, name, copy.deepcopy(getattr(obj.metadata, name)))
        if obj.spec != existing.spec:
            new.spec = copy.deepcopy(obj.spec)
            new.metadata.generation = (existing.metadata.generation or 0) + 1
        new.metadata.resourceVersion = self._next_version()
        self._store(resource).put(new)
        if new.metadata.deletionTimestamp is not None and not new.metadata.finalizers:
            self._remove(new)
        else:
            log.debug('updated %r', new)
            self._emit('MODIFIED', new)
        return copy.deepcopy(new)

    async def update_status(self, obj):
        resource = await self._call(
            'update_status', obj, obj.metadata.name, obj.metadata.namespace
        )
        existing = self._get(resource, obj.metadata.name, obj.metadata.namespace)
        self._check_version(obj, existing)
        new = copy.deepcopy(existing)
        new.status = copy.deepcopy(obj.status)
        new.metadata.resourceVersion = self._next_version()
        self._store(resource).put(new)
        log.debug('updated status %r', new)
        self._emit('MODIFIED', new)
        return copy.deepcopy(new)

    async def delete(self, resource, name, namespace=None):
        resource = await self._call('delete', resource, name, namespace)
        existing = self._get(resource, name, namespace)
        self._mark_deleted(existing)
        return copy.deepcopy(existing)

    def objects(self, resource=None):
        """Return copies of all stored objects, optionally of a single type."""
        if resource is not None:
            stores = [self._store(resource)]
        else:
            stores = list(self._stores.values())
        return [
            copy.deepcopy(obj)
            for obj in itertools.chain.from_iterable(s.objects() for s in stores)
        ]
