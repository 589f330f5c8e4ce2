import numpy as np
import pytest

from smc_square import ScheduleElement, TimeSchedule


def test_from_times_with_unobserved_start():
    schedule = TimeSchedule.from_times([1.0, 2.0, 3.0], start_time=0.0)
    assert len(schedule) == 4
    assert schedule.n_obs == 3
    assert not schedule[0].is_observed
    assert schedule[0].index_obs == 0
    assert [e.index_obs for e in schedule] == [0, 0, 1, 2]
    assert schedule.n_obs_slots == 3
    np.testing.assert_array_equal(schedule.times, [0.0, 1.0, 2.0, 3.0])


def test_start_defaults_to_first_observation():
    schedule = TimeSchedule.from_times([2.0, 1.0, 2.0])
    assert len(schedule) == 2
    assert schedule[0].time == 1.0
    assert schedule[0].is_observed


def test_output_times_are_unobserved_and_point_at_next_observation():
    schedule = TimeSchedule.from_times([1.0, 3.0], start_time=0.0, output_times=[2.0, 4.0])
    elements = list(schedule)
    assert [e.time for e in elements] == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert [e.is_observed for e in elements] == [False, True, False, True, False]
    assert [e.index_obs for e in elements] == [0, 0, 1, 1, 2]
    # a trailing unobserved time gets its own slot
    assert schedule.n_obs_slots == 3


def test_empty_schedule_is_rejected():
    with pytest.raises(ValueError):
        TimeSchedule([])
    with pytest.raises(ValueError):
        TimeSchedule.from_times([])


def test_times_before_start_are_rejected():
    with pytest.raises(ValueError):
        TimeSchedule.from_times([1.0, 2.0], start_time=1.5)


def test_elements_are_namedtuples():
    e = TimeSchedule.from_times([5.0])[0]
    assert isinstance(e, ScheduleElement)
    assert e == ScheduleElement(0, 5.0, 0, 0, True)
