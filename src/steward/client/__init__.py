from .client import Client
from .memory import Action, MemoryClient

__all__ = [
    'Action',
    'Client',
    'MemoryClient',
]
