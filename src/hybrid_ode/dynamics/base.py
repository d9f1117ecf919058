"""Base protocols and types for hybrid (event-driven) dynamics."""

from __future__ import annotations

from typing import Callable, Mapping, Protocol, Sequence, Union, runtime_checkable

import numpy as np


# Parameter set passed to every callback, read-only during a run
Parameters = Mapping[str, float]

# Derivative function: f(t, y, p) -> dy/dt
DerivativeFunction = Callable[[float, np.ndarray, Parameters], np.ndarray]

# Root function: g(t, y, p) -> root values, one per monitored condition
RootFunction = Callable[
    [float, np.ndarray, Parameters],
    Union[float, Sequence[float], np.ndarray]
]

# Event function: h(t, y, p) -> new state
EventFunction = Callable[[float, np.ndarray, Parameters], np.ndarray]


@runtime_checkable
class HybridSystem(Protocol):
    """Protocol for systems with a derivative, a root and an event capability.

    `root` and `event` may be None for a system without state-dependent
    events; the integrator then behaves as a plain ODE integrator.
    """

    @property
    def n_dims(self) -> int:
        """Dimension of the state space."""
        ...

    @property
    def derivative(self) -> DerivativeFunction:
        ...

    @property
    def root(self) -> RootFunction | None:
        ...

    @property
    def event(self) -> EventFunction | None:
        ...
