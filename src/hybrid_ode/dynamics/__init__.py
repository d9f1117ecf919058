"""Dynamics module: event-driven integration, trajectories and models."""

from .trajectory import Trajectory
from .base import (
    HybridSystem,
    DerivativeFunction,
    RootFunction,
    EventFunction,
    Parameters,
)
from .errors import (
    IntegrationError,
    NonConvergence,
    InvalidConfiguration,
    EventLoopDetected,
)
from .solvers import IntegrationMethod
from .config import IntegratorConfig, RootAtStartPolicy
from .events import EventRecord, threshold_root, threshold_reset
from .integrators import (
    integrate,
    EventDrivenIntegrator,
    IntegrationResult,
    IntegrationStats,
    Phase,
)
from .models import HybridModel

__all__ = [
    "Trajectory",
    "HybridSystem",
    "DerivativeFunction",
    "RootFunction",
    "EventFunction",
    "Parameters",
    "IntegrationError",
    "NonConvergence",
    "InvalidConfiguration",
    "EventLoopDetected",
    "IntegrationMethod",
    "IntegratorConfig",
    "RootAtStartPolicy",
    "EventRecord",
    "threshold_root",
    "threshold_reset",
    "integrate",
    "EventDrivenIntegrator",
    "IntegrationResult",
    "IntegrationStats",
    "Phase",
    "HybridModel",
]
