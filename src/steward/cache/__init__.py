from .events import (
    CreateEvent,
    Event,
    EventKind,
    UpdateEvent,
    DeleteEvent,
    GenericEvent,
)
from .store import Store
from .index import Indexer
from .informer import Informer
from .cache import Cache

__all__ = [
    'Cache',
    'CreateEvent',
    'DeleteEvent',
    'Event',
    'EventKind',
    'GenericEvent',
    'Indexer',
    'Informer',
    'Store',
    'UpdateEvent',
]
