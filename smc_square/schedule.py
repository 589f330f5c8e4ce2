from collections import namedtuple

import numpy as np


ScheduleElement = namedtuple(
    'ScheduleElement', ['index', 'time', 'index_output', 'index_obs', 'is_observed']
)
ScheduleElement.__doc__ = """
One time point of the simulation timeline.

index_obs is the ordinal of the observation at this point when it is
observed, otherwise the ordinal of the next observation.
"""


class TimeSchedule:
    """
    Ordered, immutable sequence of schedule elements.

    The sampler walks the schedule with integer positions; position 0 is the
    start time, and the last position is len(schedule) - 1.
    """

    def __init__(self, elements):
        self._elements = tuple(elements)
        if len(self._elements) == 0:
            raise ValueError("a time schedule needs at least one element")

    @classmethod
    def from_times(cls, obs_times, start_time=None, output_times=()):
        """
        Builds a schedule from observation times.

        Args:
            obs_times (array-like): times at which data are observed.
            start_time (float): time of the first element. Defaults to the
                                earliest observation or output time.
            output_times (array-like): extra unobserved times at which the
                                       filter output is recorded.

        Returns:
            TimeSchedule
        """
        obs_times = np.unique(np.asarray(obs_times, dtype=float))
        output_times = np.asarray(output_times, dtype=float)
        all_times = np.concatenate([obs_times, output_times])
        if start_time is None:
            if all_times.size == 0:
                raise ValueError("cannot infer a start time from an empty schedule")
            start_time = float(np.min(all_times))
        if np.any(all_times < start_time):
            raise ValueError("schedule times must not precede start_time")

        times = np.unique(np.concatenate([[start_time], all_times]))
        observed = np.isin(times, obs_times)

        elements = []
        n_obs = 0
        for k, (t, is_obs) in enumerate(zip(times, observed)):
            elements.append(ScheduleElement(k, float(t), k, n_obs, bool(is_obs)))
            if is_obs:
                n_obs += 1
        return cls(elements)

    def __len__(self):
        return len(self._elements)

    def __getitem__(self, pos):
        return self._elements[pos]

    def __iter__(self):
        return iter(self._elements)

    def __repr__(self):
        return f"TimeSchedule(n={len(self)}, n_obs={self.n_obs})"

    @property
    def times(self):
        return np.array([e.time for e in self._elements])

    @property
    def n_obs(self):
        return sum(e.is_observed for e in self._elements)

    @property
    def n_obs_slots(self):
        # length of every log-increment vector
        return self._elements[-1].index_obs + 1
