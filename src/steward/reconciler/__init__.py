from .components import (
    ComponentRegistry,
    ManagedComponent,
    Observation,
    Readiness,
)

from .managed import (
    create_or_update,
    delete_owned,
    Operation,
    set_controller_reference,
    set_owner_reference,
)

from .status import (
    build_status,
    compute_status,
    Phase,
)

from .reconciler import Reconciler

__all__ = [
    'build_status',
    'ComponentRegistry',
    'compute_status',
    'create_or_update',
    'delete_owned',
    'ManagedComponent',
    'Observation',
    'Operation',
    'Phase',
    'Readiness',
    'Reconciler',
    'set_controller_reference',
    'set_owner_reference',
]
