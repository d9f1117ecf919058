"""Hybrid ODE model: derivative, root and event bundled with their parameters."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np

from .base import DerivativeFunction, EventFunction, Parameters, RootFunction
from .config import IntegratorConfig
from .errors import InvalidConfiguration
from .integrators import EventDrivenIntegrator, IntegrationResult


@dataclass
class HybridModel:
    """ODE model dy/dt = f(t, y, p) with optional threshold-style events.

    Implements the HybridSystem protocol.

    Attributes:
        derivative: The derivative function f(t, y, p) -> dy/dt.
        n_dims: Dimension of the state space.
        root: Root function g(t, y, p), or None.
        event: Event function h(t, y, p), or None.
        parameters: Default parameter set.
        config: Default integrator options.
        directions: Per-condition crossing directions, or None for both.
        event_times: Times at which the event is always applied, or None.
    """
    derivative: DerivativeFunction
    _n_dims: int
    root: RootFunction | None = None
    event: EventFunction | None = None
    parameters: Mapping[str, float] = field(default_factory=dict)
    config: IntegratorConfig = field(default_factory=IntegratorConfig)
    directions: Sequence[int] | None = None
    event_times: Sequence[float] | None = None

    @property
    def n_dims(self) -> int:
        """Dimension of the state space."""
        return self._n_dims

    def simulate(
        self,
        y0: np.ndarray,
        times: Sequence[float] | np.ndarray,
        parameters: Parameters | None = None,
        **kwargs
    ) -> IntegrationResult:
        """Simulate the model from initial condition y0.

        Args:
            y0: Initial state, shape (n_dims,).
            times: Strictly increasing output times.
            parameters: Values overriding the model's default parameters.
            **kwargs: Override default integration options.

        Returns:
            IntegrationResult with trajectory and event information.
        """
        y0 = np.asarray(y0, dtype=float)

        if y0.shape != (self.n_dims,):
            raise InvalidConfiguration(
                f"Initial state has wrong shape: expected ({self.n_dims},), "
                f"got {y0.shape}"
            )

        params = dict(self.parameters)
        if parameters is not None:
            params.update(parameters)

        config = self.config.replace(**kwargs) if kwargs else self.config
        integrator = EventDrivenIntegrator.for_system(self, config)
        return integrator.run(y0, times, params)

    def without_events(self) -> HybridModel:
        """The same model with root, event and event times removed."""
        return dataclasses.replace(
            self, root=None, event=None, directions=None, event_times=None
        )

    @classmethod
    def exponential_decay(cls, rate: float = 1.0, **kwargs) -> HybridModel:
        """Create exponential decay: dy/dt = -rate * y.

        The rate is stored as parameter 'rate'. Solution: y0 * exp(-rate * t).

        Args:
            rate: Decay rate.
            **kwargs: Additional options passed to HybridModel.

        Returns:
            HybridModel for the decay.
        """
        def f(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
            return -p['rate'] * y

        parameters = {'rate': rate, **kwargs.pop('parameters', {})}
        return cls(derivative=f, _n_dims=1, parameters=parameters, **kwargs)

    @classmethod
    def predator_prey(
        cls,
        growth: float = 1.2,
        attack: float = 0.2,
        efficiency: float = 0.1,
        mortality: float = 0.1,
        threshold: float | None = 0.25,
        **kwargs
    ) -> HybridModel:
        """Create Lotka-Volterra predator-prey dynamics with a viability cutoff.

        State: [prey N, predator P]
            dN/dt = growth * N - attack * N * P
            dP/dt = efficiency * attack * N * P - mortality * P

        When threshold is not None, a population that falls below it is set
        to exactly zero (minimum viable population). With N = 0 the prey
        derivative vanishes, so an extinct population stays extinct.

        Args:
            growth: Prey growth rate.
            attack: Predation rate.
            efficiency: Conversion efficiency of eaten prey into predators.
            mortality: Predator death rate.
            threshold: Minimum viable population, or None for no cutoff.
            **kwargs: Additional options passed to HybridModel.

        Returns:
            HybridModel for the predator-prey system.
        """
        def f(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
            prey, predator = y
            predation = p['attack'] * prey * predator
            return np.array([
                p['growth'] * prey - predation,
                p['efficiency'] * predation - p['mortality'] * predator,
            ])

        parameters = {
            'growth': growth,
            'attack': attack,
            'efficiency': efficiency,
            'mortality': mortality,
        }

        if threshold is None:
            return cls(derivative=f, _n_dims=2, parameters=parameters, **kwargs)

        parameters['threshold'] = threshold

        def below_threshold(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
            return y - p['threshold']

        def extinction(t: float, y: np.ndarray, p: Parameters) -> np.ndarray:
            return np.where(y < p['threshold'], 0.0, y)

        return cls(
            derivative=f,
            _n_dims=2,
            root=below_threshold,
            event=extinction,
            parameters=parameters,
            **kwargs
        )

    def __repr__(self) -> str:
        return (
            f"HybridModel(n_dims={self.n_dims}, root={self.root is not None}, "
            f"event={self.event is not None}, method={self.config.method.name})"
        )
