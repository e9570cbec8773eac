import copy

import pytest

import steward
from steward import (
    CreateEvent,
    DeleteEvent,
    UpdateEvent,
)
from steward.predicates import (
    all_of,
    annotations_changed,
    any_of,
    evaluate,
    fields_changed,
    generation_changed,
    labels_changed,
    negate,
    on_create,
    on_delete,
    resource_version_changed,
)


pytestmark = pytest.mark.anyio


@pytest.fixture
def job(make_job):
    obj = make_job(active=1)
    obj.metadata.generation = 1
    obj.metadata.resourceVersion = '1'
    return obj


def changed(obj, **kwargs):
    new = copy.deepcopy(obj)
    new.metadata.resourceVersion = str(int(obj.metadata.resourceVersion) + 1)
    for k, v in kwargs.items():
        setattr(new.metadata, k, v)
    return new


def test_generation_changed(job):
    assert generation_changed(CreateEvent(job))
    assert generation_changed(DeleteEvent(job))
    # A status update does not change the generation.
    new = changed(job)
    new.status['active'] = 2
    assert not generation_changed(UpdateEvent(job, new))
    assert generation_changed(UpdateEvent(job, changed(job, generation=2)))


def test_generation_changed_approves_deletion(job):
    new = changed(job, deletionTimestamp=steward.now())
    assert generation_changed(UpdateEvent(job, new))


def test_metadata_predicates(job):
    assert resource_version_changed(UpdateEvent(job, changed(job)))
    assert not resource_version_changed(UpdateEvent(job, job))
    assert labels_changed(UpdateEvent(job, changed(job, labels={'a': 'b'})))
    assert not labels_changed(UpdateEvent(job, changed(job)))
    assert annotations_changed(UpdateEvent(job, changed(job, annotations={'a': 'b'})))
    assert not annotations_changed(UpdateEvent(job, changed(job)))


def test_fields_changed(job):
    predicate = fields_changed('status.active', 'status.succeeded', 'status.failed')
    new = changed(job)
    new.status['succeeded'] = 1
    assert predicate(UpdateEvent(job, new))

    # Changes to other fields are not relevant.
    new = changed(job)
    new.status['ready'] = 1
    new.metadata.labels['x'] = 'y'
    assert not predicate(UpdateEvent(job, new))

    # Other events always pass.
    assert predicate(CreateEvent(job))
    assert predicate(DeleteEvent(job))


def test_fields_changed_needs_a_path():
    with pytest.raises(ValueError):
        fields_changed()


def test_event_kind_predicates(job):
    assert on_create(CreateEvent(job))
    assert not on_create(DeleteEvent(job))
    assert on_delete(DeleteEvent(job))


async def test_evaluate_requires_all_predicates(job):
    calls = []

    def yes(event):
        calls.append('yes')
        return True

    async def no(event):
        calls.append('no')
        return False

    event = CreateEvent(job)
    assert await evaluate([], event)
    assert await evaluate([yes, on_create], event)
    assert not await evaluate([no, yes], event)
    # Evaluation stops at the first predicate that rejects the event.
    assert calls == ['yes', 'no']


async def test_combinators(job):
    create = CreateEvent(job)
    delete = DeleteEvent(job)
    assert await any_of(on_create, on_delete)(create)
    assert await any_of(on_create, on_delete)(delete)
    assert not await all_of(on_create, on_delete)(create)
    assert await negate(on_create)(delete)
    assert not await negate(on_create)(create)
