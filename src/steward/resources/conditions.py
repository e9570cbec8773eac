import dataclasses
import datetime
import enum
import typing

from dataclasses import dataclass

from .resources import now


class ManagementState(str, enum.Enum):
    MANAGED = 'Managed'
    UNMANAGED = 'Unmanaged'
    REMOVED = 'Removed'


class ConditionStatus(str, enum.Enum):
    TRUE = 'True'
    FALSE = 'False'
    UNKNOWN = 'Unknown'


READY = 'Ready'


@dataclass
class Condition:
    type: str
    status: ConditionStatus
    reason: str = ''
    message: str = ''
    lastTransitionTime: datetime.datetime = None
    observedGeneration: int = None


def find_condition(conditions: typing.List[Condition], type: str):
    for condition in conditions or []:
        if condition.type == type:
            return condition
    return None


def set_condition(conditions: typing.List[Condition], condition: Condition, timestamp=None):
    """Set the given condition in the list of conditions.

    The list is modified in place and is kept free of duplicate types,
    new types are appended. `lastTransitionTime` is only changed if the
    status of the condition changes. Returns True if anything changed.
    """
    existing = find_condition(conditions, condition.type)
    if existing is None:
        new = dataclasses.replace(condition)
        if new.lastTransitionTime is None:
            new.lastTransitionTime = timestamp or now()
        conditions.append(new)
        return True

    changed = False
    if existing.status != condition.status:
        existing.status = condition.status
        existing.lastTransitionTime = (
            condition.lastTransitionTime or timestamp or now()
        )
        changed = True
    for name in ('reason', 'message', 'observedGeneration'):
        value = getattr(condition, name)
        if getattr(existing, name) != value:
            setattr(existing, name, value)
            changed = True
    return changed


def remove_condition(conditions: typing.List[Condition], type: str):
    existing = find_condition(conditions, type)
    if existing is None:
        return False
    conditions.remove(existing)
    return True


def is_condition_true(conditions, type):
    condition = find_condition(conditions, type)
    return condition is not None and condition.status == ConditionStatus.TRUE
