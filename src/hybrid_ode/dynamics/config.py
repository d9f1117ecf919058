"""Integrator options."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum, auto

import numpy as np

from .errors import InvalidConfiguration
from .solvers import IntegrationMethod


class RootAtStartPolicy(Enum):
    """What to do when a root condition is exactly zero at a segment start.

    A segment starts at the initial time and again after every event.
    """
    FIRE = auto()      # Apply the event; repeated firing ends in EventLoopDetected
    IGNORE = auto()    # Treat the condition as already past its crossing


@dataclass(frozen=True)
class IntegratorConfig:
    """Options for an event-driven integration run.

    Attributes:
        method: Embedded Runge-Kutta pair used for stepping.
        rtol: Relative tolerance of the step controller.
        atol: Absolute tolerance (scalar or one value per state component).
        first_step: Initial step size, or None to choose it automatically.
        max_step: Upper bound on the internal step size.
        max_shrink_attempts: Rejected trial steps allowed in a row before
            NonConvergence is raised.
        root_tol: Width of the time bracket at which root bisection stops.
            Crossings within this distance of the earliest one are treated
            as simultaneous.
        max_consecutive_events: Events allowed at the same time point before
            EventLoopDetected is raised.
        root_at_start: Handling of root conditions that are zero at a
            segment start.
    """
    method: IntegrationMethod = IntegrationMethod.DOPRI45
    rtol: float = 1e-6
    atol: float | tuple[float, ...] = 1e-9
    first_step: float | None = None
    max_step: float = np.inf
    max_shrink_attempts: int = 25
    root_tol: float = 1e-10
    max_consecutive_events: int = 10
    root_at_start: RootAtStartPolicy = RootAtStartPolicy.FIRE

    def __post_init__(self) -> None:
        if not isinstance(self.method, IntegrationMethod):
            raise InvalidConfiguration(f"Unknown integration method: {self.method!r}")
        if not isinstance(self.root_at_start, RootAtStartPolicy):
            raise InvalidConfiguration(
                f"Unknown root-at-start policy: {self.root_at_start!r}"
            )
        if not self.rtol > 0:
            raise InvalidConfiguration(f"rtol must be positive, got {self.rtol}")
        if np.any(np.asarray(self.atol) < 0):
            raise InvalidConfiguration(f"atol must be non-negative, got {self.atol}")
        if self.first_step is not None and not self.first_step > 0:
            raise InvalidConfiguration(
                f"first_step must be positive, got {self.first_step}"
            )
        if not self.max_step > 0:
            raise InvalidConfiguration(f"max_step must be positive, got {self.max_step}")
        if self.max_shrink_attempts < 1:
            raise InvalidConfiguration(
                f"max_shrink_attempts must be at least 1, got {self.max_shrink_attempts}"
            )
        if not self.root_tol > 0:
            raise InvalidConfiguration(f"root_tol must be positive, got {self.root_tol}")
        if self.max_consecutive_events < 1:
            raise InvalidConfiguration(
                "max_consecutive_events must be at least 1, "
                f"got {self.max_consecutive_events}"
            )

    def replace(self, **overrides) -> IntegratorConfig:
        """Return a validated copy with some options replaced."""
        unknown = set(overrides) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise InvalidConfiguration(
                f"Unknown integrator options: {', '.join(sorted(unknown))}"
            )
        return dataclasses.replace(self, **overrides)
