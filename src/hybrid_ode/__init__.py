"""Event-driven ODE integration with threshold-triggered state resets."""

from .dynamics import (
    EventDrivenIntegrator,
    HybridModel,
    IntegratorConfig,
    IntegrationResult,
    Trajectory,
    integrate,
)

__version__ = "0.1.0"

__all__ = [
    "EventDrivenIntegrator",
    "HybridModel",
    "IntegratorConfig",
    "IntegrationResult",
    "Trajectory",
    "integrate",
]
