from ..resources import object_key


class Store:
    """Last known state of the objects of one resource type.

    Objects are keyed by `namespace/name`, or just `name` for cluster
    scoped objects.
    """

    def __init__(self, key_func=None):
        if key_func is None:
            key_func = object_key
        self.key_func = key_func
        self._items = {}

    def __repr__(self):
        return f'<{self.__class__.__name__} {len(self)} objects>'

    def __getitem__(self, key):
        return self._items[key]

    def __contains__(self, key):
        return key in self._items

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def keys(self):
        return list(self._items.keys())

    def get(self, key, default=None):
        return self._items.get(key, default)

    def find(self, obj):
        """Return the stored version of the given object, or None."""
        return self._items.get(self.key_func(obj), None)

    def put(self, obj):
        """Store the object, returns the version it replaced, if any."""
        key = self.key_func(obj)
        old = self._items.get(key, None)
        self._items[key] = obj
        self._changed(key, old, obj)
        return old

    def pop(self, obj):
        """Remove the object, returns the removed version, if any."""
        key = obj if isinstance(obj, str) else self.key_func(obj)
        old = self._items.pop(key, None)
        if old is not None:
            self._changed(key, old, None)
        return old

    def objects(self, namespace=None):
        """Return the stored objects sorted by key."""
        return [
            self._items[key]
            for key in sorted(self._items)
            if namespace is None or self._items[key].metadata.namespace == namespace
        ]

    def replace(self, objects):
        """Replace the content of the store, returns the objects that are gone."""
        new = {self.key_func(obj): obj for obj in objects}
        gone = [self._items[key] for key in self._items if key not in new]
        for obj in gone:
            self.pop(obj)
        for obj in new.values():
            self.put(obj)
        return gone

    def clear(self):
        for key in list(self._items):
            self.pop(key)

    def _changed(self, key, old, new):
        pass
