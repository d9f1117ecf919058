"""Adaptive step solvers used by the event-driven integrator.

The integrator drives scipy's explicit Runge-Kutta solvers one step at a
time so that it can inspect every accepted step for root crossings.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Type

from scipy.integrate import RK23, RK45, OdeSolver


class IntegrationMethod(Enum):
    """Available adaptive integration methods."""
    DOPRI45 = auto()     # Dormand-Prince 5(4) via scipy RK45, default
    BOSH23 = auto()      # Bogacki-Shampine 3(2) via scipy RK23, cheaper for loose tolerances


def solver_class(method: IntegrationMethod) -> Type[OdeSolver]:
    """Return the scipy solver class for an integration method."""
    if method == IntegrationMethod.DOPRI45:
        return RK45
    elif method == IntegrationMethod.BOSH23:
        return RK23
    else:
        raise ValueError(f"Unknown integration method: {method}")
