"""
Module- and file-loading to find the manager to run.

The target is given on the command-line as `module:attribute` or
`path/to/file.py:attribute`, like an ASGI application is given to a server.
The attribute is either a `Manager` instance or a factory function that
takes the engine configuration and returns a `Manager`.

* Importable modules (`steward run pkg.mod:manager`).
* Plain files (`steward run controller.py:build_manager`).
"""

import importlib
import importlib.abc
import importlib.util
import os.path
import sys
from typing import cast

from ..exceptions import FatalError
from ..manager import Manager


def split_target(target):
    module, sep, attribute = str(target).rpartition(':')
    if not sep or not module or not attribute:
        raise FatalError(f'target must be given as module:attribute, got: {target!r}')
    return module, attribute


def load_file(path):
    sys.path.insert(0, os.path.abspath(os.path.dirname(path)))
    name = f'__steward_script__{os.path.splitext(os.path.basename(path))[0]}'
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec) if spec is not None else None
    loader = cast(importlib.abc.Loader, spec.loader) if spec is not None else None
    if module is not None and loader is not None:
        sys.modules[name] = module
        loader.exec_module(module)
    else:
        raise ImportError(f'Failed loading {path}: no module or loader.')
    return module


def load_target(target):
    """Import the module or file of the given target and return the attribute."""
    module_name, attribute = split_target(target)
    if module_name.endswith('.py') or os.path.sep in module_name:
        if not os.path.exists(module_name):
            raise FatalError(f'no such file: {module_name}')
        module = load_file(module_name)
    else:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise FatalError(f'can not import {module_name}: {e}') from e
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        raise FatalError(f'{module_name} has no attribute {attribute}') from e


def load_manager(target, config=None, replace_config=False):
    """Return the manager the given target refers to.

    Factories are called with the given config and may adjust it. A manager
    instance keeps the config it was created with unless `replace_config`
    is set.
    """
    obj = load_target(target)
    if isinstance(obj, Manager):
        if replace_config and config is not None:
            obj.config = config
        return obj
    if callable(obj):
        manager = obj(config)
        if isinstance(manager, Manager):
            return manager
        raise FatalError(f'{target} did not return a Manager, got: {manager!r}')
    raise FatalError(f'{target} is neither a Manager nor a factory, got: {obj!r}')
