"""
Create, update and delete the resources managed by a primary resource.

A managed resource is linked to its owner with a controller owner reference.
Only the fields the desired object declares are compared with, and written
to, the existing object. Fields set by others (defaults filled in by the
store, status, unrelated labels) are left alone.
"""

import copy
import enum
import logging

from ..exceptions import AlreadyOwned, ObjectNotFound
from ..resources import get_controller_of, OwnerReference


__all__ = [
    'create_or_update',
    'delete_owned',
    'is_subset',
    'merge',
    'Operation',
    'set_controller_reference',
    'set_owner_reference',
]

log = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    CREATED = 'created'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'


def set_owner_reference(owner, obj, controller=False, block_owner_deletion=False):
    """Add an owner reference to `owner` on `obj`.

    An existing reference to the same owner is replaced. Only one owner may
    be the controller of an object, trying to set a second one raises
    `AlreadyOwned`.
    """
    if owner.metadata.uid is None:
        raise ValueError(f'owner has no uid: {owner!r}')
    if owner.namespaced and obj.metadata.namespace != owner.metadata.namespace:
        raise ValueError(f'cross namespace owner references are not allowed: {obj!r} {owner!r}')
    if controller:
        existing = get_controller_of(obj)
        if existing is not None and existing.uid != owner.metadata.uid:
            raise AlreadyOwned(
                type(obj),
                obj.metadata.name,
                obj.metadata.namespace,
                message=f'controlled by {existing.kind} {existing.name}',
            )
    ref = OwnerReference(
        apiVersion=owner.apiVersion,
        kind=owner.kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
        controller=controller,
        blockOwnerDeletion=block_owner_deletion,
    )
    refs = [r for r in obj.metadata.ownerReferences if r.uid != ref.uid]
    refs.append(ref)
    obj.metadata.ownerReferences = refs
    return obj


def set_controller_reference(owner, obj):
    return set_owner_reference(owner, obj, controller=True, block_owner_deletion=True)


def is_subset(desired, observed):
    """Return True if every value in `desired` is also found in `observed`.

    Dicts are compared key by key, recursively. Lists must have the same
    length and match item by item.
    """
    if isinstance(desired, dict):
        if not isinstance(observed, dict):
            return False
        return all(k in observed and is_subset(v, observed[k]) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(observed, list) or len(desired) != len(observed):
            return False
        return all(is_subset(d, o) for d, o in zip(desired, observed))
    return desired == observed


def merge(base, desired):
    """Return a copy of `base` with the values of `desired` merged in.
    Dicts are merged recursively, everything else is replaced."""
    out = copy.deepcopy(base) if isinstance(base, dict) else {}
    for k, v in desired.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def _matches(desired, existing):
    return (
        is_subset(desired.spec, existing.spec)
        and is_subset(desired.metadata.labels, existing.metadata.labels)
        and is_subset(desired.metadata.annotations, existing.metadata.annotations)
    )


async def create_or_update(client, owner, desired):
    """Make sure the desired object exists and is controlled by `owner`.

    Returns a tuple `(observed, operation)`. `Conflict` errors raised by the
    client are propagated, the caller retries with backoff.
    """
    resource = type(desired)
    if desired.metadata.namespace is None and resource.namespaced:
        desired = copy.deepcopy(desired)
        desired.metadata.namespace = owner.metadata.namespace
    name = desired.metadata.name
    namespace = desired.metadata.namespace

    try:
        existing = await client.get(resource, name, namespace=namespace)
    except ObjectNotFound:
        obj = copy.deepcopy(desired)
        set_controller_reference(owner, obj)
        created = await client.create(obj)
        log.info('created %r for %r', created, owner)
        return created, Operation.CREATED

    ref = get_controller_of(existing)
    if ref is not None and ref.uid != owner.metadata.uid:
        raise AlreadyOwned(
            resource, name, namespace,
            message=f'controlled by {ref.kind} {ref.name}',
        )
    if ref is not None and _matches(desired, existing):
        return existing, Operation.UNCHANGED

    obj = copy.deepcopy(existing)
    obj.spec = merge(existing.spec, desired.spec)
    obj.metadata.labels = merge(existing.metadata.labels, desired.metadata.labels)
    obj.metadata.annotations = merge(existing.metadata.annotations, desired.metadata.annotations)
    set_controller_reference(owner, obj)
    updated = await client.update(obj)
    log.info('updated %r for %r', updated, owner)
    return updated, Operation.UPDATED


async def delete_owned(client, owner, resource):
    """Delete all objects of the given type controlled by `owner`.

    Returns the number of such objects that still existed, including those
    that were already marked for deletion.
    """
    found = 0
    namespace = owner.metadata.namespace if resource.namespaced else None
    for obj in await client.list(resource, namespace=namespace):
        if not obj.is_controlled_by(owner):
            continue
        found += 1
        if obj.metadata.deletionTimestamp is not None:
            continue
        try:
            await client.delete(resource, obj.metadata.name, namespace=obj.metadata.namespace)
            log.info('deleted %r of %r', obj, owner)
        except ObjectNotFound:
            pass
    return found
