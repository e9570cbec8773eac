import copy
import dataclasses
import enum

from ..resources import (
    Condition,
    ConditionStatus,
    READY,
    set_condition,
)
from .components import Readiness


__all__ = [
    'build_status',
    'compute_status',
    'error_status',
    'Phase',
    'TERMINAL_PHASES',
]


class Phase(str, enum.Enum):
    PENDING = 'Pending'
    RUNNING = 'Running'
    SUCCEEDED = 'Succeeded'
    FAILED = 'Failed'


TERMINAL_PHASES = (Phase.SUCCEEDED, Phase.FAILED)


def _conditions(conditions):
    # Conditions read back from a file or another store may be plain dicts.
    out = []
    for condition in conditions or []:
        if isinstance(condition, dict):
            condition = Condition(**condition)
        else:
            condition = dataclasses.replace(condition)
        out.append(condition)
    return out


def _first(observations, default_reason):
    for observation in observations:
        if observation.reason:
            return observation.reason, observation.message
    return default_reason, ''


def compute_status(observations, conditions=None, generation=None, timestamp=None):
    """Aggregate the observations of all managed resources.

    Returns `(phase, conditions)` where conditions is a copy of the given
    conditions with the `Ready` condition set:

    - any Failed: Failed, Ready=False
    - all Succeeded: Succeeded, Ready=True
    - any Progressing, or a mix of Succeeded and Pending: Running, Ready=Unknown
    - nothing observed or all Pending: Pending, Ready=Unknown
    """
    observations = list(observations)
    by_readiness = {r: [o for o in observations if o.readiness == r] for r in Readiness}

    if by_readiness[Readiness.FAILED]:
        phase = Phase.FAILED
        status = ConditionStatus.FALSE
        reason, message = _first(by_readiness[Readiness.FAILED], 'Failed')
    elif observations and len(by_readiness[Readiness.SUCCEEDED]) == len(observations):
        phase = Phase.SUCCEEDED
        status = ConditionStatus.TRUE
        reason, message = _first(observations, 'Succeeded')
    elif by_readiness[Readiness.PROGRESSING] or by_readiness[Readiness.SUCCEEDED]:
        phase = Phase.RUNNING
        status = ConditionStatus.UNKNOWN
        reason, message = _first(by_readiness[Readiness.PROGRESSING], 'Running')
    else:
        phase = Phase.PENDING
        status = ConditionStatus.UNKNOWN
        reason, message = _first(observations, 'Pending')

    conditions = _conditions(conditions)
    set_condition(
        conditions,
        Condition(
            type=READY,
            status=status,
            reason=reason,
            message=message,
            observedGeneration=generation,
        ),
        timestamp=timestamp,
    )
    return phase, conditions


def build_status(owner, phase, conditions, fields=None):
    """Return the complete new status of `owner`.

    Fields of the current status that are not managed here are preserved.
    """
    status = copy.deepcopy(owner.status or {})
    status.update(fields or {})
    status['phase'] = Phase(phase).value
    status['conditions'] = conditions
    status['observedGeneration'] = owner.metadata.generation
    return status


def error_status(owner, reason, message, timestamp=None):
    """Return the status of `owner` with `Ready=False` and the given reason."""
    status = copy.deepcopy(owner.status or {})
    conditions = _conditions(status.get('conditions'))
    set_condition(
        conditions,
        Condition(
            type=READY,
            status=ConditionStatus.FALSE,
            reason=reason,
            message=message,
            observedGeneration=owner.metadata.generation,
        ),
        timestamp=timestamp,
    )
    status['conditions'] = conditions
    status['observedGeneration'] = owner.metadata.generation
    return status
