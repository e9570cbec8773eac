__all__ = [
    'AlreadyExists',
    'AlreadyOwned',
    'CleanupError',
    'ConfigError',
    'Conflict',
    'Error',
    'FatalError',
    'InvalidSpec',
    'ObjectError',
    'ObjectNotFound',
    'PermanentError',
    'QueueShutDown',
    'Requeue',
    'ResourceExpired',
    'StoreError',
    'StoreUnavailable',
    'TemporaryError',
    'iterate_errors',
]


def iterate_errors(exc):
    """
    iterate over all non-exceptiongroup parts of an exception(group)
    """
    if isinstance(exc, BaseExceptionGroup):
        for e in exc.exceptions:
            yield from iterate_errors(e)
    else:
        yield exc


def _describe(resource, name, namespace=None):
    out = []
    api_version = getattr(resource, 'apiVersion', None)
    kind = getattr(resource, 'kind', None)
    if api_version is not None and kind is not None:
        out.append(f'{api_version}/{kind}')
    if namespace is not None:
        out.append(f'{namespace}/{name}')
    else:
        out.append(str(name))
    return ' '.join(out)


class FatalError(Exception):
    """A fatal error that we can not recover from."""


class ConfigError(FatalError):
    """The engine configuration is invalid."""


class Error(Exception):
    """Base class for all custom Exceptions."""

    def __init__(self, message=None):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.__repr__()

    def __repr__(self):
        return f'{self.__class__.__name__}: {self.message}'


class ObjectError(Error):
    def __init__(self, resource, name, namespace=None, message=None):
        super().__init__(message)
        self.resource = resource
        self.name = name
        self.namespace = namespace

    def __repr__(self):
        msg = _describe(self.resource, self.name, self.namespace)
        if self.message:
            msg = f'{msg}: {self.message}'
        return f'{self.__class__.__name__}: {msg}'


class ObjectNotFound(ObjectError):
    pass


class StoreError(ObjectError):
    """An error reported by the object store."""


class Conflict(StoreError):
    """The write was rejected because the object changed in the meantime."""


class AlreadyExists(Conflict):
    pass


class StoreUnavailable(StoreError):
    """The object store could not be reached."""


class ResourceExpired(StoreError):
    """A watch was started from a resourceVersion the store no longer
    remembers, the caller has to list again."""


class AlreadyOwned(ObjectError):
    """The object is already controlled by another owner."""


class InvalidSpec(Error):
    """Raised by a desired-state function when the spec can not be realized."""

    def __init__(self, message=None, reason='InvalidSpec'):
        super().__init__(message)
        self.reason = reason


class CleanupError(Error):
    """Cleanup of a managed resource failed while the owner is deleted."""


class QueueShutDown(Error):
    """The workqueue has been shut down."""


class TemporaryError(Error):
    """Raised by a reconcile function when a recoverable error occurs.
    The request will be requeued after the given delay, or rate limited
    if no delay is given."""

    def __init__(self, message=None, delay=None):
        super().__init__(message)
        self.delay = delay

    def __repr__(self):
        return f'{self.__class__.__name__}: {self.message} delay: {self.delay}'


class PermanentError(Error):
    """Raised by a reconcile function when a non-recoverably error occurs."""


class Requeue(Error):
    """Raised by a reconcile function to requeue a request.
    The request will be requeued after the given delay."""

    def __init__(self, after=None):
        super().__init__(None)
        self.after = after

    def __repr__(self):
        return f'{self.__class__.__name__}: after: {self.after}'
