from .builders import ControllerBuilder
from .manager import Manager

__all__ = [
    'ControllerBuilder',
    'Manager',
]
