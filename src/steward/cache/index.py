from .store import Store


def index_by_namespace(obj):
    return [obj.metadata.namespace]


def index_by_owner(obj):
    return [ref.uid for ref in obj.metadata.ownerReferences or []]


class Indexer(Store):
    """A store that maintains secondary indices over its objects.

    An index function returns the index values of an object. Objects can
    then be looked up by any of those values with `by_index`.
    The `namespace` index always exists.
    """

    def __init__(self, key_func=None, indexers=None):
        super().__init__(key_func=key_func)
        self._indexers = {}
        self._indices = {}
        self.add_indexers({'namespace': index_by_namespace})
        if indexers is not None:
            self.add_indexers(indexers)

    def __repr__(self):
        return f'<{self.__class__.__name__} {len(self)} objects, indices: {list(self._indexers)}>'

    def add_indexers(self, indexers):
        conflicts = set(self._indexers) & set(indexers)
        if conflicts:
            raise ValueError(f'indexer conflict: {sorted(conflicts)}')
        for name, index_func in indexers.items():
            self._indexers[name] = index_func
            self._indices[name] = {}
            for key, obj in self._items.items():
                self._update_index(name, key, None, obj)

    def index(self, name):
        """Decorator that registers an index function with the given name."""

        def decorator(f):
            self.add_indexers({name: f})
            return f

        return decorator

    def by_index(self, name, value):
        """Return the objects with the given index value, sorted by key."""
        keys = self._indices[name].get(value, ())
        return [self._items[key] for key in sorted(keys)]

    def index_values(self, name):
        return [value for value, keys in self._indices[name].items() if keys]

    def objects(self, namespace=None):
        if namespace is None:
            return super().objects()
        return self.by_index('namespace', namespace)

    def _update_index(self, name, key, old, new):
        index = self._indices[name]
        old_values = set(self._indexers[name](old)) if old is not None else set()
        new_values = set(self._indexers[name](new)) if new is not None else set()
        for value in old_values - new_values:
            keys = index.get(value)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del index[value]
        for value in new_values - old_values:
            index.setdefault(value, set()).add(key)

    def _changed(self, key, old, new):
        for name in self._indexers:
            self._update_index(name, key, old, new)
