__all__ = [
    'Client',
]


class Client:
    """Interface: asynchronous access to an object store.

    The store persists typed objects, enforces optimistic concurrency on
    `metadata.resourceVersion` and serves resourceVersion ordered change
    streams. The engine only consumes this interface, a concrete backend
    is provided by the user. `MemoryClient` is an in-memory implementation.

    Errors are reported with the exceptions from `steward.exceptions`:
    `ObjectNotFound`, `Conflict` (and `AlreadyExists`) and
    `StoreUnavailable`.
    """

    async def get(self, resource, name, namespace=None):
        """Get a object by name."""
        raise NotImplementedError()

    async def get_status(self, resource, name, namespace=None):
        """Get a object through its status subresource."""
        return await self.get(resource, name, namespace=namespace)

    async def list(self, resource, namespace=None, labels=None):
        """List objects, optionally filtered by namespace and labels.
        Returns an `ObjectList`."""
        raise NotImplementedError()

    def watch(self, resource, namespace=None, resource_version=None):
        """Return an async iterator of `(event_type, obj)` tuples where
        event_type is one of `ADDED`, `MODIFIED` or `DELETED`.
        Only changes after `resource_version` are reported."""
        raise NotImplementedError()

    async def create(self, obj):
        """Create the given object."""
        raise NotImplementedError()

    async def update(self, obj):
        """Replace metadata and spec of the given object.
        The status is never touched."""
        raise NotImplementedError()

    async def update_status(self, obj):
        """Replace the status of the given object.
        Metadata and spec are never touched."""
        raise NotImplementedError()

    async def delete(self, resource, name, namespace=None):
        """Delete a object. Objects with finalizers are only marked for
        deletion by setting their deletionTimestamp."""
        raise NotImplementedError()

    async def get_for(self, request):
        """Get the object a request refers to."""
        return await self.get(request.resource, request.name, namespace=request.namespace)
