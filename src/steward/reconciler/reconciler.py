import logging

from ..config import EngineConfig
from ..controller import Result
from ..exceptions import (
    AlreadyOwned,
    CleanupError,
    FatalError,
    InvalidSpec,
    ObjectNotFound,
    StoreError,
    TemporaryError,
)
from ..invocation import invoke
from ..resources import (
    add_finalizer,
    get_resource,
    has_finalizer,
    ManagementState,
    remove_finalizer,
)

from .components import ComponentRegistry
from .managed import create_or_update, delete_owned, Operation
from .status import build_status, compute_status, error_status, TERMINAL_PHASES


__all__ = [
    'Reconciler',
]

log = logging.getLogger(__name__)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefixes the log message with the request"""

    def process(self, msg, kwargs):
        return '%r: %s' % (self.extra['request'], msg), kwargs


class Reconciler:
    """Drives a primary resource and its managed resources towards the
    declared state.

    A pass for one request runs these steps in order and stops at the first
    one that decides the outcome:

    1. fetch the object, a missing object needs no work
    2. an object marked for deletion runs the cleanup of all components and
       then releases its finalizer
    3. `managementState: Removed` deletes all managed resources,
       `Unmanaged` leaves everything alone
    4. a missing finalizer is added, nothing else is written in that pass
    5. the components compute the desired managed resources
    6. which are created or updated
    7. the status is computed from the observed managed resources
    8. and written if it changed

    Passes are idempotent, a second pass over an unchanged world performs
    no writes.
    """

    def __init__(self, resource, components, config=None):
        self.resource = get_resource(resource)
        if not isinstance(components, ComponentRegistry):
            components = ComponentRegistry(components)
        if not len(components):
            raise FatalError(f'reconciler for {self.resource.kind} needs at least one component')
        self.components = components
        self.config = config or EngineConfig()

    def __repr__(self):
        return f'<Reconciler {self.resource.apiVersion}/{self.resource.kind} {self.components!r}>'

    @property
    def finalizer(self):
        return self.config.finalizer

    async def __call__(self, client, request):
        logger = RequestLoggerAdapter(log, {'request': request})

        try:
            obj = await client.get_for(request)
        except ObjectNotFound:
            logger.debug('not found, nothing to do')
            return Result()

        if obj.metadata.deletionTimestamp is not None:
            return await self.finalize(client, obj, logger)

        try:
            state = ManagementState(obj.management_state)
        except ValueError:
            await self.record_error(
                client, obj, InvalidSpec(f'unknown managementState: {obj.management_state}'), logger
            )

        if state == ManagementState.REMOVED:
            return await self.remove(client, obj, logger)
        if state == ManagementState.UNMANAGED:
            logger.debug('unmanaged, skipping')
            return Result()

        if add_finalizer(obj, self.finalizer):
            await client.update(obj)
            logger.info('added finalizer %s', self.finalizer)
            return Result(requeue=True)

        try:
            observed = await self.apply(client, obj, logger)
        except (InvalidSpec, AlreadyOwned) as e:
            await self.record_error(client, obj, e, logger)

        return await self.update_status(client, obj, observed, logger)

    def desired(self, obj):
        """Return a list of `(component, desired objects)` tuples."""
        out = []
        for component in self.components:
            out.append((component, list(component.desired(obj) or [])))
        return out

    async def apply(self, client, obj, logger=log):
        """Create or update all desired managed resources and return a list
        of `(component, observed object)` tuples."""
        # Compute everything first, an invalid spec must not leave the
        # managed resources half updated.
        desired = self.desired(obj)
        observed = []
        for component, objects in desired:
            for child in objects:
                result, operation = await create_or_update(client, obj, child)
                if operation != Operation.UNCHANGED:
                    logger.info('%s %r', operation.value, result)
                observed.append((component, result))
        return observed

    async def update_status(self, client, obj, observed, logger=log):
        observations = []
        fields = {}
        for component, child in observed:
            observations.append(component.observe(child))
            fields.update(component.status_fields(child) or {})

        phase, conditions = compute_status(
            observations,
            conditions=obj.status.get('conditions'),
            generation=obj.metadata.generation,
        )
        status = build_status(obj, phase, conditions, fields)
        if status != obj.status:
            if status.get('phase') != obj.status.get('phase'):
                logger.info('phase %s -> %s', obj.status.get('phase'), status['phase'])
            obj.status = status
            await client.update_status(obj)
        else:
            logger.debug('status unchanged')

        if not observations:
            return Result()
        if phase in TERMINAL_PHASES:
            return Result(requeue_after=self.config.terminal_requeue_interval)
        return Result(requeue_after=self.config.requeue_interval)

    async def record_error(self, client, obj, error, logger=log):
        """Record the error in the Ready condition and raise a TemporaryError
        so the request is retried with backoff."""
        if isinstance(error, AlreadyOwned):
            reason = 'OwnershipConflict'
        else:
            reason = getattr(error, 'reason', None) or type(error).__name__
        message = error.message or str(error)
        status = error_status(obj, reason, message)
        if status != obj.status:
            obj.status = status
            await client.update_status(obj)
        raise TemporaryError(f'{reason}: {message}') from error

    async def finalize(self, client, obj, logger=log):
        if not has_finalizer(obj, self.finalizer):
            logger.debug('being deleted, finalizer already removed')
            return Result()

        logger.info('being deleted, cleaning up')
        for component in self.components:
            try:
                await invoke(component.cleanup, client, obj)
            except (StoreError, TimeoutError):
                raise
            except Exception as e:
                error = CleanupError(f'{component.name}: {e}')
                logger.error('cleanup failed: %s', error.message)
                status = error_status(obj, 'CleanupFailed', error.message)
                if status != obj.status:
                    obj.status = status
                    await client.update_status(obj)
                raise TemporaryError(error.message) from e

        remove_finalizer(obj, self.finalizer)
        await client.update(obj)
        logger.info('removed finalizer %s', self.finalizer)
        return Result()

    async def remove(self, client, obj, logger=log):
        remaining = 0
        for resource in self.components.resources:
            remaining += await delete_owned(client, obj, resource)
        if remaining:
            logger.info('removing %i managed resources', remaining)
            return Result(requeue_after=self.config.removed_requeue_interval)
        logger.debug('removed, all managed resources are gone')
        return Result()
