import dataclasses
import datetime
import typing

from dataclasses import dataclass, field

from .registry import resource_registry


def now():
    """Current time in UTC, truncated to seconds like the api server does."""
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


@dataclass
class OwnerReference:
    apiVersion: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    blockOwnerDeletion: bool = False


@dataclass
class ObjectMeta:
    name: str = None
    namespace: str = None
    uid: str = None
    resourceVersion: str = None
    generation: int = None
    creationTimestamp: datetime.datetime = None
    deletionTimestamp: datetime.datetime = None
    labels: typing.Dict[str, str] = field(default_factory=dict)
    annotations: typing.Dict[str, str] = field(default_factory=dict)
    finalizers: typing.List[str] = field(default_factory=list)
    ownerReferences: typing.List[OwnerReference] = field(default_factory=list)


@dataclass
class Object:
    """Base class of all resources the engine works with.

    Subclasses define the type of a resource by setting the class attributes
    `apiVersion` and `kind` and are registered in the resource registry, so
    that an `(apiVersion, kind)` pair can be resolved back to its class.

    `spec` holds the user declared desired state and `status` the state
    observed by the controller. Both are plain dicts.
    """

    apiVersion: typing.ClassVar[str] = None
    kind: typing.ClassVar[str] = None
    namespaced: typing.ClassVar[bool] = True

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: dict = field(default_factory=dict)
    status: dict = field(default_factory=dict)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.apiVersion and cls.kind:
            resource_registry.register(cls)

    def __repr__(self):
        out = [f'{self.apiVersion}/{self.kind}']
        name = self.metadata.name
        namespace = self.metadata.namespace
        if namespace is not None:
            out.append(f'{namespace}/{name}')
        elif name is not None:
            out.append(f'{name}')
        if self.metadata.resourceVersion is not None:
            out.append(self.metadata.resourceVersion)
        ident = ' '.join(out)
        return f'<Object {ident}>'

    @property
    def key(self):
        return object_key(self)

    @property
    def management_state(self):
        return self.spec.get('managementState') or 'Managed'

    def is_controlled_by(self, owner):
        ref = get_controller_of(self)
        return ref is not None and ref.uid == owner.metadata.uid


class ObjectList(list):
    """A list of objects as returned by a store listing.

    `resourceVersion` is the version of the store at the time of listing,
    a watch started from it does not miss any change.
    """

    def __init__(self, items=(), resource_version=None):
        super().__init__(items)
        self.resourceVersion = resource_version


def create_resource(api_version, kind, namespaced=True):
    """Create and register a resource class for the given api_version/kind.

    Useful for resources that don't need any special behaviour, e.g. the
    children of a custom resource.
    """
    return type(
        kind,
        (Object,),
        {
            'apiVersion': api_version,
            'kind': kind,
            'namespaced': namespaced,
            '__module__': __name__,
        },
    )


def get_resource(resource):
    """Return the resource class of the given class or instance."""
    if isinstance(resource, Object):
        resource = type(resource)
    if not (isinstance(resource, type) and issubclass(resource, Object)):
        raise TypeError(f'not a resource: {resource!r}')
    if not (resource.apiVersion and resource.kind):
        raise TypeError(f'resource without apiVersion/kind: {resource!r}')
    return resource


def resource_key(resource):
    resource = get_resource(resource)
    return (resource.apiVersion, resource.kind)


def object_key(obj):
    """Create a key from the given object for use in a store."""
    name = obj.metadata.name
    namespace = obj.metadata.namespace
    if namespace is not None:
        return f'{namespace}/{name}'
    else:
        return name


def is_same_version(o1, o2):
    o1_resource_version = o1.metadata.resourceVersion
    o2_resource_version = o2.metadata.resourceVersion
    return (
        o1_resource_version is not None and o1_resource_version == o2_resource_version
    )


def get_field(obj, path, default=None):
    """Resolve a dotted field path like `status.active` on an object.

    Attributes and dict keys are both followed, missing fields resolve to
    `default`.
    """
    value = obj
    for part in path.split('.'):
        if value is None:
            return default
        if isinstance(value, dict):
            value = value.get(part, None)
        else:
            value = getattr(value, part, None)
    if value is None:
        return default
    return value


def get_controller_of(obj):
    for ref in obj.metadata.ownerReferences or []:
        if ref.controller:
            return ref
    return None


def has_finalizer(obj, finalizer):
    return finalizer in (obj.metadata.finalizers or [])


def add_finalizer(obj, finalizer):
    """Add the finalizer, returns True if the object was changed."""
    if has_finalizer(obj, finalizer):
        return False
    obj.metadata.finalizers.append(finalizer)
    return True


def remove_finalizer(obj, finalizer):
    """Remove the finalizer, returns True if the object was changed."""
    if not has_finalizer(obj, finalizer):
        return False
    obj.metadata.finalizers = [f for f in obj.metadata.finalizers if f != finalizer]
    return True


def as_dict(obj):
    """Convert the given object to a dict with the keys in a readable order."""
    d = {
        'apiVersion': obj.apiVersion,
        'kind': obj.kind,
    }
    d.update(dataclasses.asdict(obj))
    return d
