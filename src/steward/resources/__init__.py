import yaml

from .registry import (
    resource_registry,
    ResourceNotFoundError,
)

from .resources import (
    add_finalizer,
    as_dict,
    create_resource,
    get_controller_of,
    get_field,
    get_resource,
    has_finalizer,
    is_same_version,
    now,
    Object,
    object_key,
    ObjectList,
    ObjectMeta,
    OwnerReference,
    remove_finalizer,
    resource_key,
)

from .conditions import (
    Condition,
    ConditionStatus,
    find_condition,
    is_condition_true,
    ManagementState,
    READY,
    remove_condition,
    set_condition,
)

__all__ = [
    'add_finalizer',
    'as_dict',
    'Condition',
    'ConditionStatus',
    'create_resource',
    'find_condition',
    'get_controller_of',
    'get_field',
    'get_resource',
    'has_finalizer',
    'is_condition_true',
    'is_same_version',
    'ManagementState',
    'now',
    'Object',
    'object_key',
    'ObjectList',
    'ObjectMeta',
    'OwnerReference',
    'READY',
    'remove_condition',
    'remove_finalizer',
    'resource_key',
    'resource_registry',
    'ResourceNotFoundError',
    'resources_to_yaml',
    'set_condition',
]


def _no_empty_value_dict(items, **kwargs):
    """Helper function that returns dicts
    that don't have empty values.
    """
    return dict(
        [(k, v) for k, v in items if v], **{k: v for k, v in kwargs.items() if v}
    )


def _plain(value):
    """Turn enums and timestamps into something yaml can represent safely."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    elif hasattr(value, 'isoformat'):
        return value.isoformat()
    elif isinstance(value, str):
        return str.__str__(value)
    return value


_resource_key_order = ['apiVersion', 'kind', 'metadata', 'spec', 'status']


class YamlDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


def resources_to_yaml(*objects):
    """Serialize one or more objects to a multi document yaml string.

    Keys without a value are omitted and the top level keys are emitted in
    a user readable order.
    """
    dicts = []
    for obj in objects:
        tmp = _no_empty_value_dict(as_dict(obj).items())
        tmp['metadata'] = _no_empty_value_dict(tmp.get('metadata', {}).items())
        keys = dict.fromkeys(_resource_key_order + list(tmp.keys()))
        dicts.append(_plain({k: tmp[k] for k in keys if k in tmp}))
    return yaml.dump_all(dicts, sort_keys=False, Dumper=YamlDumper)
