import itertools
import logging

from ..resources import get_resource, get_controller_of

from ..invocation import nonblocking


log = logging.getLogger(__name__)


class Request:
    """The key of a unit of work, identifies the object to reconcile."""

    resource: type
    name: str
    namespace: str = None

    def __init__(self, resource, name, namespace=None):
        self.resource = get_resource(resource)
        self.name = name
        self.namespace = namespace

    @property
    def api_version(self) -> str:
        return self.resource.apiVersion

    @property
    def kind(self) -> str:
        return self.resource.kind

    def _key(self):
        return (self.resource.apiVersion, self.resource.kind, self.namespace, self.name)

    def __hash__(self):
        return hash(self._key())

    def __eq__(self, other):
        if not isinstance(other, Request):
            return NotImplemented
        return self._key() == other._key()

    def __repr__(self):
        if self.namespace is not None:
            name = f'{self.namespace}/{self.name}'
        else:
            name = self.name
        return f'<Request {self.resource.apiVersion}/{self.resource.kind} {name}>'


@nonblocking
def requests_from_event_for_object(event):
    match type(event):
        case event.CreateEvent | event.DeleteEvent | event.GenericEvent:
            return request_for_object(event.obj)
        case event.UpdateEvent:
            # Old and new are the same object, the workqueue will
            # deduplicate them.
            return itertools.chain(
                request_for_object(event.old),
                request_for_object(event.new),
            )


@nonblocking
def requests_from_event_for_owner(event, owner=None):
    match type(event):
        case event.CreateEvent | event.DeleteEvent | event.GenericEvent:
            return request_for_owner(event.obj, owner=owner)
        case event.UpdateEvent:
            # The owner may have changed, so reconcile the old and new one.
            return itertools.chain(
                request_for_owner(event.old, owner=owner),
                request_for_owner(event.new, owner=owner),
            )


def request_for_object(obj):
    if obj is None:
        return
    yield Request(type(obj), obj.metadata.name, namespace=obj.metadata.namespace)


def request_for_owner(obj, owner=None):
    """Yield a request for the controller of the given object, if that
    controller is of the given owner type."""
    if obj is None:
        return
    owner = get_resource(owner)
    ref = get_controller_of(obj)
    if ref is None:
        return
    if ref.apiVersion == owner.apiVersion and ref.kind == owner.kind:
        if not ref.name:
            raise ValueError(f'owner reference without name on {obj!r}: {ref!r}')
        namespace = obj.metadata.namespace if owner.namespaced else None
        yield Request(owner, ref.name, namespace=namespace)
