import pytest

import steward
from steward import (
    CreateEvent,
    OwnerReference,
    Request,
    UpdateEvent,
    requests_from_event_for_object,
    requests_from_event_for_owner,
)
from steward.examples.taskrunner import Job, TaskRunner


def owner_ref(name='hello', uid='uid-1', controller=True, kind='TaskRunner'):
    return OwnerReference(
        apiVersion='batch.example.com/v1',
        kind=kind,
        name=name,
        uid=uid,
        controller=controller,
    )


def test_request_identity():
    a = Request(TaskRunner, 'hello', namespace='default')
    b = Request(TaskRunner, 'hello', namespace='default')
    assert a == b
    assert hash(a) == hash(b)
    assert a != Request(TaskRunner, 'hello', namespace='other')
    assert a != Request(Job, 'hello', namespace='default')
    assert len({a, b}) == 1


def test_request_requires_a_resource():
    with pytest.raises(TypeError):
        Request(object, 'hello')


def test_requests_for_object(make_taskrunner):
    obj = make_taskrunner()
    assert list(requests_from_event_for_object(CreateEvent(obj))) == [
        Request(TaskRunner, 'hello', namespace='default'),
    ]
    # Old and new of an update map to the same request.
    requests = list(requests_from_event_for_object(UpdateEvent(obj, obj)))
    assert set(requests) == {Request(TaskRunner, 'hello', namespace='default')}


def test_requests_for_owner(make_job):
    job = make_job()
    job.metadata.ownerReferences = [owner_ref()]
    assert list(requests_from_event_for_owner(CreateEvent(job), owner=TaskRunner)) == [
        Request(TaskRunner, 'hello', namespace='default'),
    ]


def test_requests_for_owner_uses_the_controller_reference_only(make_job):
    job = make_job()
    job.metadata.ownerReferences = [owner_ref(controller=False)]
    assert list(requests_from_event_for_owner(CreateEvent(job), owner=TaskRunner)) == []

    # Controllers of another kind are not our business.
    job.metadata.ownerReferences = [owner_ref(kind='Other')]
    assert list(requests_from_event_for_owner(CreateEvent(job), owner=TaskRunner)) == []


def test_requests_for_owner_of_update_covers_old_and_new_owner(make_job):
    old = make_job()
    old.metadata.ownerReferences = [owner_ref(name='a', uid='1')]
    new = make_job()
    new.metadata.ownerReferences = [owner_ref(name='b', uid='2')]
    requests = set(requests_from_event_for_owner(UpdateEvent(old, new), owner=TaskRunner))
    assert requests == {
        Request(TaskRunner, 'a', namespace='default'),
        Request(TaskRunner, 'b', namespace='default'),
    }


def test_malformed_owner_reference_raises(make_job):
    job = make_job()
    job.metadata.ownerReferences = [owner_ref(name='')]
    with pytest.raises(ValueError):
        list(requests_from_event_for_owner(CreateEvent(job), owner=TaskRunner))


def test_request_repr():
    assert repr(Request(TaskRunner, 'hello', namespace='default')) == (
        '<Request batch.example.com/v1/TaskRunner default/hello>'
    )
    assert steward.Result().is_requeue is False
    assert steward.Result(requeue_after=5).is_requeue is True


def test_requests_for_cluster_scoped_owner(make_job):
    Cluster = steward.create_resource('example.com/v1', 'Cluster', namespaced=False)
    job = make_job()
    job.metadata.ownerReferences = [
        OwnerReference('example.com/v1', 'Cluster', 'top', 'uid-top', controller=True),
    ]
    requests = list(requests_from_event_for_owner(CreateEvent(job), owner=Cluster))
    assert requests == [Request(Cluster, 'top')]
    assert requests[0].namespace is None
