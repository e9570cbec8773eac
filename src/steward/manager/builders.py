import logging

from ..controller import Controller, requests_from_event_for_owner
from ..exceptions import FatalError
from ..reconciler import ComponentRegistry, Reconciler
from ..resources import get_resource, resource_key


log = logging.getLogger(__name__)


class Builder:
    """A Builder is used to collect information at import time
    that is later used to create actual instances at runtime.
    """


class ControllerBuilder(Builder):
    def __init__(self, manager, resource, name=None) -> None:
        self.manager = manager
        self.resource = get_resource(resource)
        self.components = ComponentRegistry()
        self._kwargs = {
            'name': name,
            'predicates': [],
            'watches': [],
            'startup': None,
            'shutdown': None,
            'reconcile': None,
            'concurrent_reconciles': None,
        }
        self._owned = set()
        self._instance = None

    def __repr__(self):
        return f'<ControllerBuilder {self.resource.apiVersion}/{self.resource.kind} {self.components!r}>'

    def __getattr__(self, key):
        # proxy to Controller instance
        if key.startswith('_'):
            raise AttributeError(key)
        return getattr(self._instance, key)

    def _add_watch(self, resource, handler, predicates=None, **kwargs):
        self._kwargs['watches'].append({
            'resource': get_resource(resource),
            'handler': handler,
            'predicates': list(predicates or []),
            'kwargs': kwargs,
        })

    def watch_owner(self, resource, predicates=None):
        """Function that registers a watch for the given resource
        and that enqueues the owning resource if it is of the same api_version
        and type as the resources managed by this controller.
        """
        self._owned.add(resource_key(resource))
        self._add_watch(
            resource, requests_from_event_for_owner,
            predicates=predicates, owner=self.resource,
        )

    def watch(self, resource, predicates=None):
        """Decorator that registers a watch for the given resource.
        The decorated function must return or yield the Request instances
        that are then added to the workqueue for reconcilation.
        """

        def decorator(f):
            self._add_watch(resource, f, predicates=predicates)
            return f

        return decorator

    def component(self, component):
        """Register a managed component with this controller.

        The resources of the component are watched and changes to them
        enqueue their owner, filtered by the predicates of the component.
        """
        self.components.register(component)
        if component.resource is not None and resource_key(component.resource) not in self._owned:
            self.watch_owner(component.resource, predicates=component.predicates)
        return component

    def predicate(self, func=None, /):
        """Decorator that registers a predicate function with this controller.
        All registered predicates must return True for a request to be added
        to the workqueue for reconcilation.
        """

        def decorator(f):
            self._kwargs['predicates'].append(f)
            return f

        if func is None:
            # We're called as @decorator() with parens.
            return decorator
        else:
            # We're called as @decorator without parens.
            return decorator(func)

    def startup(self, func=None, /):
        """Decorator that registers an startup function with this controller."""
        existing = self._kwargs.get('startup', None)
        if callable(existing):
            raise FatalError(
                f'Controller already has a startup function registered: {existing}'
            )

        def decorator(f):
            self._kwargs['startup'] = f
            return f

        if func is None:
            # We're called as @decorator() with parens.
            return decorator
        else:
            # We're called as @decorator without parens.
            return decorator(func)

    def shutdown(self, func=None, /):
        """Decorator that registers an shutdown function with this controller."""
        existing = self._kwargs.get('shutdown', None)
        if callable(existing):
            raise FatalError(
                f'Controller already has a shutdown function registered: {existing}'
            )

        def decorator(f):
            self._kwargs['shutdown'] = f
            return f

        if func is None:
            # We're called as @decorator() with parens.
            return decorator
        else:
            # We're called as @decorator without parens.
            return decorator(func)

    def reconcile(self, func=None, /, *, concurrency=None):
        """Decorator that registers a reconcile function with this controller.
        Without a reconcile function the controller reconciles its
        registered components."""
        existing = self._kwargs.get('reconcile', None)
        if callable(existing):
            raise FatalError(
                f'Controller already has a reconcile function registered: {existing}'
            )
        self._kwargs['concurrent_reconciles'] = concurrency

        def decorator(f):
            self._kwargs['reconcile'] = f
            return f

        if func is None:
            # We're called as @decorator() with parens.
            return decorator
        else:
            # We're called as @decorator without parens.
            return decorator(func)

    def build(self, client, cache, config):
        """Create the controller."""
        kwargs = dict(self._kwargs)
        if kwargs['reconcile'] is None:
            if not len(self.components):
                raise FatalError(
                    f'controller for {self.resource.kind} has neither a reconcile function nor components'
                )
            kwargs['reconcile'] = Reconciler(self.resource, self.components, config=config)
        elif len(self.components):
            raise FatalError(
                f'controller for {self.resource.kind} has both a reconcile function and components'
            )
        if kwargs['concurrent_reconciles'] is None:
            kwargs['concurrent_reconciles'] = config.worker_count
        controller = Controller(
            client,
            cache,
            self.resource,
            reconcile_timeout=config.reconcile_timeout,
            rate_limiter=config.rate_limiter(),
            **kwargs,
        )
        # The builder needs an instance so it can proxy to it at runtime.
        self._instance = controller
        return controller
