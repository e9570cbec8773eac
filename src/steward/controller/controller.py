import logging
import typing

import anyio
from anyio import TASK_STATUS_IGNORED, CancelScope
from anyio.abc import TaskStatus

from ..tasks import Task
from ..workqueue import Workqueue
from ..source import EventSource
from ..resources import get_resource
from ..invocation import is_async_fn
from ..predicates import generation_changed
from ..exceptions import (
    FatalError,
    ObjectNotFound,
    PermanentError,
    QueueShutDown,
    Requeue,
    StoreError,
    TemporaryError,
)

from .request import requests_from_event_for_object
from .result import Result


log = logging.getLogger(__name__)


class ReconcilerLoggerAdapter(logging.LoggerAdapter):
    """Prefixes the log message with reconcilers number"""

    def process(self, msg, kwargs):
        reconciler = 'reconciler[%i]' % self.extra['num']
        return '%s: %s' % (reconciler, msg), kwargs


class Controller(Task):
    """Runs the reconcile function for the requests produced by its watches.

    The primary resource is always watched, additional watches map events
    of other resource types to requests for the primary resource.
    `concurrent_reconciles` workers process the shared workqueue, the queue
    guarantees that a request is never processed by two workers at once.
    """

    client: object
    cache: object
    resource: type
    name: str = None
    predicates: typing.List[typing.Callable]
    watches: typing.List[dict]
    reconcile: typing.Callable = None
    startup: typing.Callable = None
    shutdown: typing.Callable = None
    concurrent_reconciles: int = 1
    reconcile_timeout: float = None
    wait_for_cache: bool = True

    def __init__(self, client, cache, resource,
        name=None,
        predicates=None, primary_predicates=None, watches=None,
        reconcile=None, startup=None, shutdown=None,
        concurrent_reconciles=1, reconcile_timeout=None,
        rate_limiter=None, wait_for_cache=True):
        super().__init__()
        self.client = client
        self.cache = cache
        self.resource = get_resource(resource)
        self.name = name
        self.predicates = list(predicates or [])
        if primary_predicates is None:
            primary_predicates = [generation_changed]
        self.primary_predicates = list(primary_predicates)
        self.watches = list(watches or [])
        if reconcile:
            self.reconcile = reconcile
        if startup:
            self.startup = startup
        if shutdown:
            self.shutdown = shutdown
        self.concurrent_reconciles = concurrent_reconciles
        self.reconcile_timeout = reconcile_timeout
        self.wait_for_cache = wait_for_cache

        if not callable(self.reconcile) or not is_async_fn(self.reconcile):
            raise FatalError(f'{self!r} needs an async reconcile function, got: {self.reconcile!r}')
        if self.concurrent_reconciles < 1:
            raise FatalError(f'{self!r} needs at least one reconciler, got: {self.concurrent_reconciles}')

        self._task_group = None  # Main taskgroup
        self._event_sources = []
        self.queue = Workqueue(rate_limiter=rate_limiter)

        # Ensure we have a watch for the resource we are reconciling.
        self._add_event_source(
            self.resource,
            requests_from_event_for_object,
            predicates=self.primary_predicates,
        )

        # Create event sources for all our watches.
        for watch in self.watches:
            self._add_event_source(
                watch['resource'],
                watch['handler'],
                predicates=watch.get('predicates', None),
                **watch.get('kwargs', {}),
            )

    def __repr__(self):
        if self.name is not None:
            return f'<{self.__class__.__name__} {self.name} {self.resource.apiVersion}/{self.resource.kind}>'
        else:
            return f'<{self.__class__.__name__} {self.resource.apiVersion}/{self.resource.kind}>'

    @property
    def event_sources(self):
        return self._event_sources

    def _add_event_source(self, resource, handler, predicates=None, **kwargs):
        source = EventSource(
            self.queue,
            get_resource(resource),
            handler,
            kwargs,
            # Controller wide predicates apply to every watch.
            predicates=self.predicates + list(predicates or []),
        )
        self._event_sources.append(source)
        # Connect the source to the informer for its resource. Events are
        # buffered in the stream until the source runs.
        source.add_informer(self.cache.get_informer(source.resource))

    async def _startup(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('startup')
        await self.startup(self.client)
        task_status.started()

    async def _shutdown(self):
        log.debug('shutdown')
        await self.shutdown(self.client)

    async def _apply_result(self, logger, request, result):
        if isinstance(result, Result):
            if result.requeue_after:
                logger.debug('requeuing with delay %s %r', result.requeue_after, request)
                await self.queue.add_after(request, result.requeue_after)
            elif result.requeue:
                logger.debug('requeuing %r', request)
                await self.queue.add(request)

    async def process(self, request, logger=log):
        """Reconcile a single request and decide how to requeue it."""
        try:
            with anyio.fail_after(self.reconcile_timeout):
                result = await self.reconcile(self.client, request)
        except ObjectNotFound as e:
            logger.debug(e)
            # If the object does not exist, there's no point to
            # requeue the request. So we give up and forget about it.
            await self.queue.forget(request)
        except PermanentError as e:
            logger.error(e)
            # The reconcile function signaled to us that it can not handle
            # this request so we give up and forget about it.
            await self.queue.forget(request)
        except TemporaryError as e:
            if e.delay:
                # Requeue this request after the requested delay.
                logger.info('%s, requeuing with delay %s %r', e, e.delay, request)
                await self.queue.forget(request)
                await self.queue.add_after(request, e.delay)
            else:
                logger.info('%s, requeuing with rate limiting %r', e, request)
                await self.queue.add_rate_limited(request)
        except Requeue as e:
            await self.queue.forget(request)
            if e.after:
                logger.debug('requeuing with delay %s %r', e.after, request)
                await self.queue.add_after(request, e.after)
            else:
                logger.debug('requeuing %r', request)
                await self.queue.add(request)
        except (StoreError, TimeoutError) as e:
            # Transient errors, requeue with rate limiting.
            logger.info('transient error reconciling %r: %s', request, e)
            await self.queue.add_rate_limited(request)
        except Exception as e:
            # Unexpected error, log it and requeue with rate limiting.
            logger.exception('reconciling %r failed: %s', request, e)
            await self.queue.add_rate_limited(request)
        else:
            # Success! Forget about this request.
            await self.queue.forget(request)
            await self._apply_result(logger, request, result)

    async def _reconciler(self, num):
        log_vars = {'num': num}
        logger = ReconcilerLoggerAdapter(log, log_vars)
        logger.debug('started')
        while True:
            logger.debug(self.queue)
            try:
                request = await self.queue.get()
            except QueueShutDown:
                logger.debug('queue shut down, stopping')
                return
            logger.debug('processing %r', request)

            try:
                await self.process(request, logger=logger)
            finally:
                # In any case, mark this request as done.
                logger.debug('done processing %r', request)
                with CancelScope(shield=True):
                    await self.queue.done(request)

    async def _run_reconcilers(self):
        async with anyio.create_task_group() as tg:
            for num in range(self.concurrent_reconciles):
                tg.start_soon(self._reconciler, num)

    def stop(self):
        if self._task_group:
            log.debug('stop %r', self)
            self._task_group.cancel_scope.cancel()
        self.reset_task()

    async def __call__(self, task_status: TaskStatus[None] = TASK_STATUS_IGNORED):
        log.debug('starting %s', self)

        try:
            async with anyio.create_task_group() as tg:
                self._task_group = tg

                try:
                    for source in self._event_sources:
                        await tg.start(source)

                    await tg.start(self.queue)

                    if self.wait_for_cache:
                        await self.cache.synced

                    if self.startup is not None:
                        await tg.start(self._startup)

                    log.info('started %s', self)
                    # Inform any awaiters that we are ready.
                    task_status.started()
                    self._running.set()

                    tg.start_soon(self._run_reconcilers)

                    # Wait until told otherwise.
                    await self._stop.wait()

                except anyio.get_cancelled_exc_class():
                    log.debug('canceled %s', self)
                    raise

                finally:
                    log.debug('stopping %s', self)
                    with CancelScope(shield=True):
                        # Queued and delayed requests are abandoned.
                        await self.queue.shutdown()
                        if self.shutdown is not None:
                            await self._shutdown()

        finally:
            log.info('stopped %s', self)
