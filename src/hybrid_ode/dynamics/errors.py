"""Typed failures raised by an integration run."""

from __future__ import annotations

import numpy as np


class IntegrationError(RuntimeError):
    """Base class for integration failures.

    Attributes:
        time: Time at which the run failed, if known.
        state: Last valid state before the failure, if known.
    """

    def __init__(
        self,
        message: str,
        time: float | None = None,
        state: np.ndarray | None = None
    ):
        if time is not None:
            message = f"{message} (t={time:.10g})"
        super().__init__(message)
        self.time = time
        self.state = None if state is None else np.array(state, dtype=float)


class NonConvergence(IntegrationError):
    """Step-size control could not meet the error tolerance."""


class InvalidConfiguration(IntegrationError, ValueError):
    """Inputs or options are inconsistent."""


class EventLoopDetected(IntegrationError):
    """Events kept firing at the same time point."""
