"""Trajectory data structure for storing event-driven ODE solutions."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from scipy.interpolate import interp1d


@dataclass
class Trajectory:
    """A trajectory storing time points and state values.

    Rows are ordered by time. At an event two rows may share a time: the
    pre-event state followed by the post-event state.

    Attributes:
        times: 1D array of time points, shape (n_points,)
        states: 2D array of states, shape (n_points, n_dims)
        requested: Boolean mask, True for rows sampled at a requested output
            time and False for rows inserted at events. Defaults to all True.
    """
    times: np.ndarray
    states: np.ndarray
    requested: np.ndarray = field(default_factory=lambda: np.array([], dtype=bool))

    def __post_init__(self) -> None:
        self.times = np.array(self.times, dtype=float)
        self.states = np.array(self.states, dtype=float)

        if self.states.ndim == 1:
            self.states = self.states.reshape(-1, 1)

        if len(self.times) != len(self.states):
            raise ValueError(
                f"Length mismatch: times has {len(self.times)} points, "
                f"states has {len(self.states)} points"
            )

        if len(self.requested) == 0:
            self.requested = np.ones(len(self.times), dtype=bool)
        else:
            self.requested = np.array(self.requested, dtype=bool)
            if len(self.requested) != len(self.times):
                raise ValueError(
                    f"Length mismatch: requested has {len(self.requested)} "
                    f"entries, times has {len(self.times)} points"
                )

        if np.any(np.diff(self.times) < 0):
            raise ValueError("Trajectory times must be non-decreasing")

        for array in (self.times, self.states, self.requested):
            array.setflags(write=False)

    @property
    def n_points(self) -> int:
        """Number of rows in the trajectory."""
        return len(self.times)

    @property
    def n_dims(self) -> int:
        """Dimension of the state space."""
        return self.states.shape[1]

    @property
    def t_start(self) -> float:
        """Start time of the trajectory."""
        return float(self.times[0])

    @property
    def t_end(self) -> float:
        """End time of the trajectory."""
        return float(self.times[-1])

    @property
    def duration(self) -> float:
        """Duration of the trajectory."""
        return self.t_end - self.t_start

    @property
    def initial_state(self) -> np.ndarray:
        """Initial state of the trajectory."""
        return self.states[0].copy()

    @property
    def final_state(self) -> np.ndarray:
        """Final state of the trajectory."""
        return self.states[-1].copy()

    def interpolate(self, t: float | np.ndarray) -> np.ndarray:
        """Linearly interpolate the trajectory at given time(s).

        Where several rows share a time (an event), the last one wins, so
        the interpolant is right-continuous at discontinuities.

        Args:
            t: Time point(s) at which to interpolate.

        Returns:
            State(s) at the given time(s). Shape (n_dims,) for scalar t,
            or (n_times, n_dims) for array t.
        """
        t = np.asarray(t, dtype=float)
        scalar_input = t.ndim == 0
        t = np.atleast_1d(t)

        # Index of the last row for each distinct time
        reversed_times = self.times[::-1]
        unique_times, first_in_reversed = np.unique(reversed_times, return_index=True)
        last_rows = self.n_points - 1 - first_in_reversed

        if len(unique_times) == 1:
            if np.any(t != unique_times[0]):
                raise ValueError("Interpolation time outside the trajectory")
            result = np.repeat(self.states[last_rows], len(t), axis=0)
        else:
            interpolator = interp1d(
                unique_times, self.states[last_rows], axis=0,
                kind='linear', bounds_error=True, assume_sorted=True
            )
            result = interpolator(t)

        if scalar_input:
            return result[0]
        return result

    def slice_time(self, t_start: float, t_end: float) -> Trajectory:
        """Extract a sub-trajectory between two time points.

        Args:
            t_start: Start time of the slice.
            t_end: End time of the slice.

        Returns:
            New Trajectory containing only rows in [t_start, t_end].
        """
        mask = (self.times >= t_start) & (self.times <= t_end)
        return self._select(mask)

    def at_requested(self) -> Trajectory:
        """Rows sampled at the requested output times only."""
        return self._select(self.requested)

    def event_points(self) -> Trajectory:
        """Rows inserted at event times only."""
        return self._select(~self.requested)

    def samples(self) -> list[tuple[float, np.ndarray]]:
        """The trajectory as a list of (time, state) pairs."""
        return [(float(t), state.copy()) for t, state in zip(self.times, self.states)]

    def _select(self, mask: np.ndarray) -> Trajectory:
        return Trajectory(
            times=self.times[mask],
            states=self.states[mask],
            requested=self.requested[mask]
        )

    def __len__(self) -> int:
        return self.n_points

    def __repr__(self) -> str:
        return (
            f"Trajectory(n_points={self.n_points}, n_dims={self.n_dims}, "
            f"t=[{self.t_start:.4f}, {self.t_end:.4f}])"
        )
