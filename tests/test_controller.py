import anyio
import pytest

import steward
from steward import (
    Cache,
    Controller,
    EngineConfig,
    FatalError,
    Manager,
    PermanentError,
    Request,
    Result,
    TemporaryError,
)
from steward.examples.taskrunner import build_manager, Job, TaskRunner


pytestmark = pytest.mark.anyio


ConfigMap = steward.create_resource('v1', 'ConfigMap')


async def wait_for(check, timeout=5):
    with anyio.fail_after(timeout):
        while True:
            result = await check()
            if result:
                return result
            await anyio.sleep(0.01)


def fast_config(**kwargs):
    kwargs.setdefault('base_backoff', 0.001)
    kwargs.setdefault('max_backoff', 0.01)
    return EngineConfig(**kwargs)


async def test_taskrunner_end_to_end(client, make_taskrunner):
    manager = build_manager(fast_config(), client=client)

    async def phase():
        try:
            taskrunner = await client.get(TaskRunner, 'hello', namespace='default')
        except steward.ObjectNotFound:
            return None
        return taskrunner.status.get('phase')

    async def phase_is(expected):
        return await phase() == expected

    async def set_job_status(**status):
        job = await client.get(Job, 'hello-job', namespace='default')
        job.status = status
        await client.update_status(job)

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        await client.create(make_taskrunner())

        assert await wait_for(lambda: phase_is('Pending'))
        await set_job_status(active=1)
        assert await wait_for(lambda: phase_is('Running'))
        await set_job_status(succeeded=1)
        assert await wait_for(lambda: phase_is('Succeeded'))

        await client.delete(TaskRunner, 'hello', namespace='default')

        async def all_gone():
            return client.objects() == []

        assert await wait_for(all_gone)
        manager.stop()


async def test_same_request_is_never_reconciled_concurrently(client, make_taskrunner):
    manager = Manager(client, config=fast_config(worker_count=4))
    ctl = manager.controller(TaskRunner)
    in_flight = set()
    overlaps = []
    seen = []

    @ctl.reconcile
    async def reconcile(client, request):
        if request in in_flight:
            overlaps.append(request)
        in_flight.add(request)
        try:
            await anyio.sleep(0.005)
            seen.append(request.name)
        finally:
            in_flight.discard(request)

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        await client.create(make_taskrunner('a'))
        await client.create(make_taskrunner('b'))
        for i in range(10):
            obj = await client.get(TaskRunner, 'a', namespace='default')
            obj.spec['image'] = f'image-{i}'
            await client.update(obj)
            await anyio.sleep(0.001)

        async def settled():
            return len(ctl.queue) == 0 and not in_flight and 'b' in seen

        await wait_for(settled)
        manager.stop()

    assert overlaps == []
    assert 'a' in seen and 'b' in seen


async def test_errors_are_retried_with_backoff(client, make_taskrunner):
    manager = Manager(client, config=fast_config())
    ctl = manager.controller(TaskRunner)
    attempts = []

    @ctl.reconcile
    async def reconcile(client, request):
        attempts.append(request.name)
        if len(attempts) < 3:
            raise RuntimeError('flaky')
        return Result()

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        await client.create(make_taskrunner())

        async def three_attempts():
            return len(attempts) >= 3

        await wait_for(three_attempts)
        await anyio.sleep(0.1)
        manager.stop()

    # Success ends the retries.
    assert attempts == ['hello', 'hello', 'hello']


async def test_result_and_exception_policies(client, make_taskrunner):
    manager = Manager(client, config=fast_config())
    ctl = manager.controller(TaskRunner)
    attempts = {}

    @ctl.reconcile
    async def reconcile(client, request):
        count = attempts[request.name] = attempts.get(request.name, 0) + 1
        if request.name == 'permanent':
            raise PermanentError('can not handle this')
        if request.name == 'temporary' and count == 1:
            raise TemporaryError('not yet', delay=0.01)
        if request.name == 'requeue' and count < 3:
            return Result(requeue_after=0.01)
        return Result()

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        for name in ('permanent', 'temporary', 'requeue'):
            await client.create(make_taskrunner(name))

        async def done():
            return attempts.get('temporary') == 2 and attempts.get('requeue') == 3

        await wait_for(done)
        await anyio.sleep(0.1)
        manager.stop()

    assert attempts == {'permanent': 1, 'temporary': 2, 'requeue': 3}


async def test_watch_mapper_fan_out_and_failures(client, make_taskrunner):
    manager = Manager(client, config=fast_config())
    ctl = manager.controller(TaskRunner)
    seen = set()

    @ctl.watch(ConfigMap)
    async def all_taskrunners(event):
        if event.obj.metadata.name == 'bad':
            raise RuntimeError('can not map this')
        items = await client.list(TaskRunner, namespace=event.obj.metadata.namespace)
        return [Request(TaskRunner, i.metadata.name, namespace=i.metadata.namespace) for i in items]

    @ctl.reconcile
    async def reconcile(client, request):
        seen.add(request.name)

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        await client.create(make_taskrunner('a'))
        await client.create(make_taskrunner('b'))

        async def both():
            return seen == {'a', 'b'}

        await wait_for(both)
        seen.clear()

        # A failing mapper drops its event, later events are still processed.
        await client.create(ConfigMap(metadata=steward.ObjectMeta(name='bad', namespace='default')))
        await client.create(ConfigMap(metadata=steward.ObjectMeta(name='good', namespace='default')))
        await wait_for(both)
        manager.stop()


async def test_primary_status_writes_do_not_trigger_reconciles(client, make_taskrunner):
    manager = Manager(client, config=fast_config())
    ctl = manager.controller(TaskRunner)
    calls = []

    @ctl.reconcile
    async def reconcile(client, request):
        calls.append(request.name)
        obj = await client.get_for(request)
        obj.status['seen'] = len(calls)
        await client.update_status(obj)

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        await client.create(make_taskrunner())

        async def called():
            return calls

        await wait_for(called)
        await anyio.sleep(0.1)
        manager.stop()

    assert calls == ['hello']


def test_builder_validation(client):
    manager = Manager(client)
    manager.controller(TaskRunner)
    with pytest.raises(FatalError):
        manager.build()

    manager = Manager(client)
    ctl = manager.controller(TaskRunner)
    ctl.component(steward.ManagedComponent('nothing', desired=lambda owner: []))

    @ctl.reconcile
    async def reconcile(client, request):
        pass

    with pytest.raises(FatalError):
        manager.build()

    with pytest.raises(FatalError):
        @ctl.reconcile
        async def another(client, request):
            pass


def test_component_registers_owner_watch(client):
    manager = build_manager(client=client)
    [controller] = manager.build()
    assert isinstance(controller.reconcile, steward.Reconciler)
    assert controller.reconcile.finalizer == 'batch.example.com/finalizer'
    resources = [source.resource for source in controller.event_sources]
    assert resources == [TaskRunner, Job]


def test_controller_needs_async_reconcile(client):
    def reconcile(client, request):
        pass

    with pytest.raises(FatalError):
        Controller(client, Cache(client), TaskRunner, reconcile=reconcile)

    async def areconcile(client, request):
        pass

    with pytest.raises(FatalError):
        Controller(client, Cache(client), TaskRunner, reconcile=areconcile, concurrent_reconciles=0)


async def test_reconcile_timeout_aborts_the_pass(client, make_taskrunner):
    manager = Manager(client, config=fast_config(reconcile_timeout=0.05))
    ctl = manager.controller(TaskRunner)
    calls = []
    finished = []
    rate_limited = []

    @ctl.reconcile
    async def reconcile(client, request):
        calls.append(request.name)
        if request.name == 'slow' and calls.count('slow') == 1:
            await anyio.sleep(10)
        finished.append(request.name)

    async with anyio.create_task_group() as tg:
        await tg.start(manager)
        queue = ctl.queue
        add_rate_limited = queue.add_rate_limited

        async def record(item):
            rate_limited.append(item.name)
            await add_rate_limited(item)

        queue.add_rate_limited = record
        await client.create(make_taskrunner('slow'))
        await client.create(make_taskrunner('fast'))

        async def both_finished():
            return {'slow', 'fast'} <= set(finished)

        await wait_for(both_finished)
        manager.stop()

    # The stuck pass was cancelled and retried with backoff, the worker
    # went on with the other request in the meantime.
    assert calls == ['slow', 'fast', 'slow']
    assert rate_limited == ['slow']
    assert finished == ['fast', 'slow']
