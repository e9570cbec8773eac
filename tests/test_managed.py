import pytest

from steward import (
    AlreadyOwned,
    Conflict,
    Operation,
    create_or_update,
    delete_owned,
    set_controller_reference,
    set_owner_reference,
)
from steward.reconciler.managed import is_subset, merge
from steward.examples.taskrunner import Job, TaskRunner


pytestmark = pytest.mark.anyio


@pytest.fixture
async def owner(client, make_taskrunner):
    return await client.create(make_taskrunner())


def test_is_subset():
    assert is_subset({}, {'a': 1})
    assert is_subset({'a': {'b': 1}}, {'a': {'b': 1, 'c': 2}, 'd': 3})
    assert not is_subset({'a': {'b': 1}}, {'a': {'b': 2}})
    assert not is_subset({'a': 1}, {})
    assert is_subset({'l': [{'x': 1}]}, {'l': [{'x': 1, 'y': 2}]})
    assert not is_subset({'l': [1]}, {'l': [1, 2]})


def test_merge_keeps_unrelated_fields():
    base = {'a': {'b': 1, 'c': 2}, 'l': [1, 2], 'd': 3}
    assert merge(base, {'a': {'b': 5}, 'l': [3]}) == {'a': {'b': 5, 'c': 2}, 'l': [3], 'd': 3}
    assert base['a']['b'] == 1


def test_single_controller_reference(make_taskrunner, make_job):
    a = make_taskrunner('a')
    a.metadata.uid = 'uid-a'
    b = make_taskrunner('b')
    b.metadata.uid = 'uid-b'
    job = make_job()

    set_controller_reference(a, job)
    set_controller_reference(a, job)
    assert len(job.metadata.ownerReferences) == 1
    ref = job.metadata.ownerReferences[0]
    assert (ref.name, ref.uid, ref.controller, ref.blockOwnerDeletion) == ('a', 'uid-a', True, True)

    with pytest.raises(AlreadyOwned):
        set_controller_reference(b, job)
    # A plain owner reference is fine.
    set_owner_reference(b, job)
    assert [r.uid for r in job.metadata.ownerReferences] == ['uid-a', 'uid-b']


def test_owner_reference_needs_same_namespace(make_taskrunner, make_job):
    owner = make_taskrunner()
    owner.metadata.uid = 'uid'
    with pytest.raises(ValueError):
        set_controller_reference(owner, make_job(namespace='other'))


async def test_create_or_update_creates_then_is_unchanged(client, owner, make_job):
    desired = make_job()
    desired.metadata.labels = {'app': 'x'}
    observed, operation = await create_or_update(client, owner, desired)
    assert operation == Operation.CREATED
    assert observed.is_controlled_by(owner)

    client.clear_actions()
    observed, operation = await create_or_update(client, owner, make_job())
    assert operation == Operation.UNCHANGED
    assert client.mutating_actions() == []


async def test_create_or_update_only_writes_divergent_declared_fields(client, owner, make_job):
    observed, _ = await create_or_update(client, owner, make_job())
    # Someone else adds fields, they are not ours to compare or revert.
    observed.spec['backoffLimit'] = 6
    observed.metadata.labels['other'] = 'label'
    await client.update(observed)
    observed, operation = await create_or_update(client, owner, make_job())
    assert operation == Operation.UNCHANGED

    desired = make_job()
    desired.spec['parallelism'] = 3
    observed, operation = await create_or_update(client, owner, desired)
    assert operation == Operation.UPDATED
    assert observed.spec == {'parallelism': 3, 'backoffLimit': 6}
    assert observed.metadata.labels == {'other': 'label'}


async def test_create_or_update_defaults_namespace(client, owner, make_job):
    observed, operation = await create_or_update(client, owner, make_job(namespace=None))
    assert operation == Operation.CREATED
    assert observed.metadata.namespace == 'default'


async def test_create_or_update_refuses_foreign_objects(client, owner, make_taskrunner, make_job):
    other = await client.create(make_taskrunner('other'))
    job = make_job()
    set_controller_reference(other, job)
    await client.create(job)
    with pytest.raises(AlreadyOwned):
        await create_or_update(client, owner, make_job())


async def test_create_or_update_adopts_orphans(client, owner, make_job):
    await client.create(make_job())
    observed, operation = await create_or_update(client, owner, make_job())
    assert operation == Operation.UPDATED
    assert observed.is_controlled_by(owner)


async def test_create_or_update_propagates_conflicts(client, owner, make_job):
    await create_or_update(client, owner, make_job())
    client.inject_error('update', Conflict(Job, 'hello-job', 'default'))
    desired = make_job()
    desired.spec['parallelism'] = 2
    with pytest.raises(Conflict):
        await create_or_update(client, owner, desired)


async def test_delete_owned(client, owner, make_job):
    await create_or_update(client, owner, make_job())
    await create_or_update(client, owner, make_job('second-job'))
    await client.create(make_job('unrelated-job'))

    assert await delete_owned(client, owner, Job) == 2
    assert [j.metadata.name for j in client.objects(Job)] == ['unrelated-job']
    assert await delete_owned(client, owner, Job) == 0
    assert client.objects(TaskRunner) == [await client.get(TaskRunner, 'hello', namespace='default')]
