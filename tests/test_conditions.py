import datetime

from steward import (
    Condition,
    ConditionStatus,
    find_condition,
    is_condition_true,
    remove_condition,
    set_condition,
)


T1 = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
T2 = datetime.datetime(2024, 1, 2, tzinfo=datetime.timezone.utc)


def test_set_condition_appends_new_types():
    conditions = []
    assert set_condition(conditions, Condition('Ready', ConditionStatus.UNKNOWN), timestamp=T1)
    assert set_condition(conditions, Condition('Degraded', ConditionStatus.FALSE), timestamp=T1)
    assert [c.type for c in conditions] == ['Ready', 'Degraded']
    assert conditions[0].lastTransitionTime == T1


def test_transition_time_only_changes_with_status():
    conditions = []
    set_condition(conditions, Condition('Ready', ConditionStatus.UNKNOWN, reason='Pending'), timestamp=T1)

    # Same status, new reason: the transition time stays.
    assert set_condition(conditions, Condition('Ready', ConditionStatus.UNKNOWN, reason='Running'), timestamp=T2)
    assert conditions[0].reason == 'Running'
    assert conditions[0].lastTransitionTime == T1

    # Nothing changed at all.
    assert not set_condition(conditions, Condition('Ready', ConditionStatus.UNKNOWN, reason='Running'), timestamp=T2)

    assert set_condition(conditions, Condition('Ready', ConditionStatus.TRUE, reason='Done'), timestamp=T2)
    assert len(conditions) == 1
    assert conditions[0].lastTransitionTime == T2
    assert is_condition_true(conditions, 'Ready')


def test_find_and_remove_condition():
    conditions = [Condition('Ready', ConditionStatus.TRUE)]
    assert find_condition(conditions, 'Ready') is conditions[0]
    assert find_condition(conditions, 'Other') is None
    assert find_condition(None, 'Ready') is None
    assert remove_condition(conditions, 'Ready')
    assert not remove_condition(conditions, 'Ready')
    assert not is_condition_true(conditions, 'Ready')
