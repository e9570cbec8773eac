class ResourceNotFoundError(Exception):
    pass


class ResourceRegistry:
    """Maps `(apiVersion, kind)` pairs to resource classes."""

    ResourceNotFoundError = ResourceNotFoundError

    def __init__(self):
        self._resources = {}

    def __contains__(self, resource):
        return (resource.apiVersion, resource.kind) in self._resources

    def register(self, resource_class: type):
        key = (resource_class.apiVersion, resource_class.kind)
        self._resources[key] = resource_class

    def load(self, api_version: str, kind: str) -> type:
        try:
            return self._resources[(api_version, kind)]
        except KeyError as e:
            msg = f'Could not find resource for: {api_version}/{kind}'
            raise ResourceNotFoundError(msg) from e

    def all(self) -> list[type]:
        return list(self._resources.values())


resource_registry = ResourceRegistry()
