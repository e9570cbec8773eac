import functools
import logging
import signal

import uvloop
import anyio
from anyio import open_signal_receiver
from anyio import TASK_STATUS_IGNORED, CancelScope
from anyio.abc import TaskStatus

from .. import exceptions
from ..cache import Cache
from ..config import EngineConfig
from ..resources import get_resource

from .builders import ControllerBuilder


log = logging.getLogger(__name__)


async def signal_handler(scope: CancelScope):
    with open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            if signum == signal.SIGINT:
                print('Ctrl+C pressed!')
            else:
                print('Terminated!')

            scope.cancel()
            return


class Manager:
    """Runs a set of controllers sharing one client and one cache.

    Controllers are declared with `manager.controller(resource)` which
    returns a builder. The controllers are created from their builders when
    the manager starts.
    """

    def __init__(self, client, config=None, namespace=None, debug=False):
        self.client = client
        self.config = config or EngineConfig()
        self.namespace = namespace
        self.debug = debug
        self.cache = Cache(client, namespace=namespace)
        self._builders = {}
        self._controllers = []
        self._task_group = None  # Main taskgroup
        self._started = anyio.Event()
        self._stop = anyio.Event()

    def __repr__(self):
        resources = [f'{b.resource.apiVersion}/{b.resource.kind}' for b in self._builders.values()]
        return f'<Manager namespace: {self.namespace} controllers: {resources}>'

    @property
    def controllers(self):
        return list(self._controllers)

    @property
    def started(self):
        """Awaitable that returns once all controllers are running."""
        return self._started.wait()

    @property
    def is_running(self):
        return self._started.is_set()

    def controller(self, resource, name=None):
        """Create or return the controller builder for the given resource."""
        resource = get_resource(resource)
        key = name if name is not None else resource
        builder = self._builders.get(key, None)
        if builder is None:
            builder = ControllerBuilder(self, resource, name=name)
            self._builders[key] = builder
        return builder

    def build(self):
        """Create the controllers from their builders."""
        if not self._controllers:
            for builder in self._builders.values():
                log.debug('creating controller from builder: %r', builder)
                controller = builder.build(self.client, self.cache, self.config)
                self._controllers.append(controller)
        return self.controllers

    def run(self):
        """Run until interrupted by SIGINT or SIGTERM."""
        anyio.run(
            functools.partial(self, setup_signal_handler=True),
            backend_options={'loop_factory': uvloop.new_event_loop},
        )

    def stop(self):
        log.debug('stop %r', self)
        self._stop.set()

    async def __call__(self, setup_signal_handler=False, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('starting %r', self)
        controllers = self.build()
        if not controllers:
            raise exceptions.FatalError(f'{self!r} has no controllers')

        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg
                if setup_signal_handler:
                    tg.start_soon(signal_handler, tg.cancel_scope)

                await tg.start(self.cache)
                for controller in controllers:
                    await tg.start(controller)

                log.info('started %r', self)
                self._started.set()
                task_status.started()

                # Wait until told otherwise.
                await self._stop.wait()
                tg.cancel_scope.cancel()
        except* exceptions.Error as eg:
            if self.debug:
                raise
            error_messages = []
            for error in exceptions.iterate_errors(eg):
                error_messages.append(str(error))
            raise exceptions.FatalError(' '.join(error_messages)) from eg
        finally:
            self._task_group = None
            log.info('stopped %r', self)
