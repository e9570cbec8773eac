from .request import (
    Request,
    request_for_object,
    request_for_owner,
    requests_from_event_for_object,
    requests_from_event_for_owner,
)

from .result import Result

from .controller import (
    Controller,
)

__all__ = [
    'Controller',
    'Request',
    'Result',
    'request_for_object',
    'request_for_owner',
    'requests_from_event_for_object',
    'requests_from_event_for_owner',
]
