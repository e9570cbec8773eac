import anyio

import steward
from steward.examples.taskrunner import build_manager, Job, TaskRunner


# Everything lives in memory, there is no job controller running the
# jobs. We play its part below by writing the job status ourselves.
client = steward.MemoryClient()
manager = build_manager(client=client)


async def set_job_status(name, namespace, **status):
    job = await client.get(Job, name, namespace=namespace)
    job.status.update(status)
    await client.update_status(job)


async def wait_for_phase(name, namespace, phase):
    while True:
        taskrunner = await client.get(TaskRunner, name, namespace=namespace)
        if taskrunner.status.get('phase') == phase:
            return taskrunner
        await anyio.sleep(0.1)


async def main():
    async with anyio.create_task_group() as tg:
        tg.start_soon(manager)
        await manager.started

        await client.create(TaskRunner(
            metadata=steward.ObjectMeta(name='hello', namespace='default'),
            spec={
                'command': ['echo', 'hello world'],
                'image': 'busybox',
                'parallelism': 2,
            },
        ))
        taskrunner = await wait_for_phase('hello', 'default', 'Pending')
        print(steward.resources_to_yaml(taskrunner, *client.objects(Job)))

        await set_job_status('hello-job', 'default', active=2)
        taskrunner = await wait_for_phase('hello', 'default', 'Running')
        print(steward.resources_to_yaml(taskrunner))

        await set_job_status('hello-job', 'default', active=0, succeeded=2)
        taskrunner = await wait_for_phase('hello', 'default', 'Succeeded')
        print(steward.resources_to_yaml(taskrunner))

        # Deleting the taskrunner runs the cleanup, releases the finalizer
        # and garbage collects the job.
        await client.delete(TaskRunner, 'hello', namespace='default')
        while client.objects():
            await anyio.sleep(0.1)
        print('all gone')

        manager.stop()


if __name__ == '__main__':
    anyio.run(main)
