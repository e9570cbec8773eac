"""
Predicates decide whether an event is relevant enough to reconcile.

A predicate is a callable taking an event and returning a bool, it may be
sync or async. All predicates registered for a watch must approve an event
for it to be enqueued.

Without filtering, the status writes performed by a controller would
trigger its own reconciliation over and over again.
"""

import functools

from .cache import EventKind
from .invocation import invoke, nonblocking
from .resources import get_field


__all__ = [
    'all_of',
    'annotations_changed',
    'any_of',
    'evaluate',
    'fields_changed',
    'generation_changed',
    'labels_changed',
    'negate',
    'on_create',
    'on_delete',
    'on_update',
    'resource_version_changed',
]


def _update_predicate(func):
    """Wrap a function that compares old and new of an update event into a
    predicate that approves all other events."""

    @functools.wraps(func)
    def predicate(event):
        if event.kind != EventKind.UPDATE:
            return True
        if event.old is None or event.new is None:
            return True
        return func(event.old, event.new)

    return nonblocking(predicate)


@_update_predicate
def generation_changed(old, new):
    """Approve updates that change the spec (and therefore the generation)
    or mark the object for deletion."""
    if old.metadata.generation != new.metadata.generation:
        return True
    return old.metadata.deletionTimestamp != new.metadata.deletionTimestamp


@_update_predicate
def resource_version_changed(old, new):
    return old.metadata.resourceVersion != new.metadata.resourceVersion


@_update_predicate
def labels_changed(old, new):
    return old.metadata.labels != new.metadata.labels


@_update_predicate
def annotations_changed(old, new):
    return old.metadata.annotations != new.metadata.annotations


def fields_changed(*paths):
    """Approve updates where any of the given dotted field paths differ,
    e.g. `fields_changed('status.active', 'status.succeeded')`."""
    if not paths:
        raise ValueError('fields_changed needs at least one field path')

    def changed(old, new):
        return any(get_field(old, path) != get_field(new, path) for path in paths)

    changed.__name__ = 'fields_changed(%s)' % ', '.join(paths)
    return _update_predicate(changed)


def _kind_predicate(kind):
    @nonblocking
    def predicate(event):
        return event.kind == kind

    predicate.__name__ = f'on_{kind.value.lower()}'
    return predicate


on_create = _kind_predicate(EventKind.CREATE)
on_update = _kind_predicate(EventKind.UPDATE)
on_delete = _kind_predicate(EventKind.DELETE)


async def evaluate(predicates, event):
    """Return True if all predicates approve the event."""
    for predicate in predicates or []:
        if not await invoke(predicate, event):
            return False
    return True


def all_of(*predicates):
    async def predicate(event):
        return await evaluate(predicates, event)

    return predicate


def any_of(*predicates):
    async def predicate(event):
        for p in predicates:
            if await invoke(p, event):
                return True
        return False

    return predicate


def negate(predicate):
    async def negated(event):
        return not await invoke(predicate, event)

    return negated
