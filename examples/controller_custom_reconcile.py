import random

import anyio

import steward


ConfigMap = steward.create_resource('v1', 'ConfigMap')
App = steward.create_resource('example.com/v1', 'App')

client = steward.MemoryClient()
manager = steward.Manager(client, config=steward.EngineConfig(base_backoff='100ms'))

# This controller reconciles Apps with a hand written reconcile function
# instead of managed components.
appctl = manager.controller(App)


@appctl.startup()
async def startup(client: steward.Client):
    print('optional startup handler')


@appctl.shutdown()
async def shutdown(client: steward.Client):
    print('optional shutdown handler')


# Register a sync predicate.
# A predicate decides if the given event is added to the controllers
# workqueue (-> is reconciled) or not.
@appctl.predicate()
def ignore_system_namespace(event):
    return event.obj.metadata.namespace != 'kube-system'


# Every App in the namespace of a changed ConfigMap is reconciled.
@appctl.watch(ConfigMap, predicates=[steward.on_update])
async def apps_for_configmap(event):
    apps = await client.list(App, namespace=event.obj.metadata.namespace)
    return [steward.Request(App, app.metadata.name, namespace=app.metadata.namespace) for app in apps]


# Asynchronous reconcile function.
@appctl.reconcile(concurrency=2)
async def reconcile(client: steward.Client, request: steward.Request):
    print(f'reconcile: {request}')
    app = await client.get_for(request)
    if random.random() > 0.5:
        # Retried with exponential backoff.
        raise steward.TemporaryError('random error')
    print(f'   reconciled app: {app}')
    return steward.Result(requeue_after=1)


async def main():
    async with anyio.create_task_group() as tg:
        tg.start_soon(manager)
        await manager.started
        for name in ('one', 'two'):
            await client.create(App(metadata=steward.ObjectMeta(name=name, namespace='default')))
        await client.create(ConfigMap(
            metadata=steward.ObjectMeta(name='settings', namespace='default'),
            spec={'color': 'blue'},
        ))
        await anyio.sleep(1)
        cm = await client.get(ConfigMap, 'settings', namespace='default')
        cm.spec['color'] = 'green'
        await client.update(cm)
        await anyio.sleep(3)
        manager.stop()


if __name__ == '__main__':
    anyio.run(main)
