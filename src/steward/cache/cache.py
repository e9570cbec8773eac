import logging

import anyio
from anyio import TASK_STATUS_IGNORED
from anyio.abc import TaskStatus

from ..tasks import Task
from ..resources import get_resource, resource_key
from .informer import Informer


log = logging.getLogger(__name__)


# - one informer for each watched resource type
# - every controller watching a type gets its own stream from that informer
# - informers are started when the cache starts, or right away when
#   requested from an already running cache


class Cache(Task):
    def __init__(self, client, namespace=None, resync_after=None):
        super().__init__()
        self.client = client
        self.namespace = namespace
        self.resync_after = resync_after
        self._task_group = None  # Main taskgroup
        self._informers = {}

    def __repr__(self):
        resources = [f'{k[0]}/{k[1]}' for k in self._informers]
        return f'<Cache namespace: {self.namespace} resources: {resources}>'

    @property
    def informers(self):
        return list(self._informers.values())

    def get_informer(self, resource, create=True):
        resource = get_resource(resource)
        key = resource_key(resource)
        informer = self._informers.get(key, None)
        if informer is None and create:
            informer = Informer(
                self.client,
                resource,
                namespace=self.namespace,
                resync_after=self.resync_after,
            )
            self._informers[key] = informer
        return informer

    async def reconcile(self):
        # Ensure all informers are running.
        for informer in self.informers:
            if not informer.is_running:
                if self._task_group:
                    await self._task_group.start(informer)

    @property
    async def synced(self):
        for informer in self.informers:
            await informer
        return True

    def stop(self):
        log.debug('stop %r', self)
        if self._task_group:
            self._task_group.cancel_scope.cancel()

    async def __call__(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('starting %r', self)

        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg

                try:
                    await self.reconcile()
                    log.info('started %s', self)
                    # Inform any awaiters that we are ready.
                    self._running.set()
                    task_status.started()

                    # Wait until told otherwise.
                    await self._stop.wait()

                except anyio.get_cancelled_exc_class():
                    log.debug('canceled %s', self)
                    raise

                finally:
                    log.debug('stopping %s', self)

        finally:
            log.info('stopped %s', self)
