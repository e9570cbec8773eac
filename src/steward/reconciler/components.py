import dataclasses
import enum
import logging
import typing

from ..exceptions import FatalError
from ..resources import get_resource


__all__ = [
    'ComponentRegistry',
    'ManagedComponent',
    'Observation',
    'Readiness',
]

log = logging.getLogger(__name__)


class Readiness(str, enum.Enum):
    PENDING = 'Pending'
    PROGRESSING = 'Progressing'
    SUCCEEDED = 'Succeeded'
    FAILED = 'Failed'


@dataclasses.dataclass
class Observation:
    """The readiness of one observed managed resource."""

    readiness: Readiness
    reason: str = ''
    message: str = ''
    component: str = None


class ManagedComponent:
    """A kind of resource that is derived from, and owned by, the primary
    resource.

    A component either subclasses ManagedComponent and overrides the methods
    below, or passes the functions to the constructor:

        ManagedComponent('job', Job, desired=desired_jobs, readiness=job_readiness)

    `desired(owner)` must be pure, it returns the list of objects that should
    exist for the given owner and may raise `InvalidSpec`. `readiness(observed)`
    maps an observed object to a `Readiness`, optionally as a tuple
    `(readiness, reason, message)`. `status_fields(observed)` returns values
    to copy into the owner's status. `cleanup(client, owner)` runs before the
    owner's finalizer is removed.
    """

    name: str = None
    resource: type = None
    predicates: typing.List[typing.Callable] = None

    def __init__(self, name=None, resource=None, desired=None, readiness=None,
        status_fields=None, cleanup=None, predicates=None):
        if name is not None:
            self.name = name
        if resource is not None:
            self.resource = resource
        if desired is not None:
            self.desired = desired
        if readiness is not None:
            self.readiness = readiness
        if status_fields is not None:
            self.status_fields = status_fields
        if cleanup is not None:
            self.cleanup = cleanup
        if predicates is not None:
            self.predicates = predicates
        self.predicates = list(self.predicates or [])
        if self.resource is not None:
            self.resource = get_resource(self.resource)

    def __repr__(self):
        if self.resource is not None:
            return f'<{self.__class__.__name__} {self.name} {self.resource.apiVersion}/{self.resource.kind}>'
        return f'<{self.__class__.__name__} {self.name}>'

    @property
    def has_desired(self):
        return 'desired' in vars(self) or type(self).desired is not ManagedComponent.desired

    def desired(self, owner):
        raise NotImplementedError()

    def readiness(self, observed):
        # An object that exists is considered ready unless told otherwise.
        return Readiness.SUCCEEDED

    def status_fields(self, observed):
        return {}

    async def cleanup(self, client, owner):
        # Managed resources carry an owner reference and are garbage
        # collected by the store together with their owner.
        pass

    def observe(self, observed):
        """Return the `Observation` for the given observed object."""
        value = self.readiness(observed)
        if isinstance(value, Observation):
            observation = value
        elif isinstance(value, tuple):
            observation = Observation(Readiness(value[0]), *value[1:])
        else:
            observation = Observation(Readiness(value))
        if observation.component is None:
            observation.component = self.name
        return observation


class ComponentRegistry:
    """The components of a controller, keyed by their unique name.

    Iterating the registry yields the components in registration order.
    """

    def __init__(self, components=None):
        self._components = {}
        for component in components or []:
            self.register(component)

    def __repr__(self):
        return f'<ComponentRegistry {list(self._components)}>'

    def __iter__(self):
        return iter(self._components.values())

    def __len__(self):
        return len(self._components)

    def __contains__(self, name):
        return name in self._components

    def __getitem__(self, name):
        return self._components[name]

    def register(self, component):
        if not isinstance(component, ManagedComponent):
            raise FatalError(f'not a managed component: {component!r}')
        if not component.name:
            raise FatalError(f'component without a name: {component!r}')
        if not component.has_desired:
            raise FatalError(f'component {component.name} has no desired state function')
        if component.name in self._components:
            raise FatalError(f'component {component.name} is already registered')
        log.debug('registered %r', component)
        self._components[component.name] = component
        return component

    @property
    def resources(self):
        """The distinct resource types managed by the components."""
        resources = []
        for component in self:
            if component.resource is not None and component.resource not in resources:
                resources.append(component.resource)
        return resources
