from .resource import Job, TaskRunner
from .controller import build_manager, FINALIZER, JobComponent, validate

__all__ = [
    'build_manager',
    'FINALIZER',
    'Job',
    'JobComponent',
    'TaskRunner',
    'validate',
]
