"""Event records and ready-made threshold conditions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .base import EventFunction, Parameters, RootFunction


ROOT = "root"
SCHEDULED = "scheduled"


@dataclass(frozen=True)
class EventRecord:
    """An event applied during a run.

    Attributes:
        time: Time at which the event was applied.
        state_before: State just before the event.
        state_after: State returned by the event function.
        triggered: Indices of the root conditions that crossed zero.
            Empty for scheduled events.
        kind: "root" for root crossings, "scheduled" for event times.
    """
    time: float
    state_before: np.ndarray
    state_after: np.ndarray
    triggered: tuple[int, ...] = ()
    kind: str = ROOT

    @property
    def changed_state(self) -> bool:
        """Whether the event modified the state."""
        return not np.array_equal(self.state_before, self.state_after)


def threshold_root(
    threshold: float,
    components: Sequence[int] | None = None
) -> RootFunction:
    """Root function y[i] - threshold for each monitored component.

    Args:
        threshold: Value whose crossing is monitored.
        components: State indices to monitor (all components if None).

    Returns:
        Root function g(t, y, p).
    """
    def root(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
        values = y if components is None else y[list(components)]
        return values - threshold

    return root


def threshold_reset(
    threshold: float,
    components: Sequence[int] | None = None,
    value: float = 0.0
) -> EventFunction:
    """Event function setting components below a threshold to a fixed value.

    Components at or above the threshold are left untouched, so the reset
    is idempotent: applying it to an already reset state changes nothing.

    Args:
        threshold: Components strictly below this are reset.
        components: State indices eligible for reset (all if None).
        value: Value assigned to reset components.

    Returns:
        Event function h(t, y, p).
    """
    def event(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
        y_new = np.array(y, dtype=float)
        indices = np.arange(len(y_new)) if components is None else np.asarray(components)
        below = indices[y_new[indices] < threshold]
        y_new[below] = value
        return y_new

    return event
