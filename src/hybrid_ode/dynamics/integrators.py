"""Event-driven numerical integration.

Steps dy/dt = f(t, y, p) with a scipy Runge-Kutta solver, watches root
conditions g(t, y, p) for sign changes between accepted steps, and at each
located crossing applies an event function h(t, y, p) before restarting the
solver from the modified state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from types import MappingProxyType
from typing import Sequence

import numpy as np
from scipy.integrate import DenseOutput, OdeSolver

from .base import (
    DerivativeFunction,
    EventFunction,
    HybridSystem,
    Parameters,
    RootFunction,
)
from .config import IntegratorConfig, RootAtStartPolicy
from .errors import (
    EventLoopDetected,
    IntegrationError,
    InvalidConfiguration,
    NonConvergence,
)
from .events import ROOT, SCHEDULED, EventRecord
from .solvers import solver_class
from .trajectory import Trajectory

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Phases of a single integration run."""
    INTEGRATING = auto()
    LOCATING_ROOT = auto()
    APPLYING_EVENT = auto()
    DONE = auto()
    FAILED = auto()


@dataclass
class IntegrationStats:
    """Work counters for an integration run.

    Attributes:
        n_steps: Accepted steps.
        n_rejected: Rejected trial steps.
        n_derivative_evals: Calls to the derivative function.
        n_root_evals: Calls to the root function.
        n_events: Events applied.
    """
    n_steps: int = 0
    n_rejected: int = 0
    n_derivative_evals: int = 0
    n_root_evals: int = 0
    n_events: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'n_steps': self.n_steps,
            'n_rejected': self.n_rejected,
            'n_derivative_evals': self.n_derivative_evals,
            'n_root_evals': self.n_root_evals,
            'n_events': self.n_events,
        }


@dataclass
class IntegrationResult:
    """Result of an event-driven integration run.

    Attributes:
        trajectory: One row per requested output time plus rows at events.
        events: Applied events in time order.
        stats: Work counters for the run.
    """
    trajectory: Trajectory
    events: list[EventRecord] = field(default_factory=list)
    stats: IntegrationStats = field(default_factory=IntegrationStats)

    @property
    def n_events(self) -> int:
        return len(self.events)

    @property
    def event_times(self) -> np.ndarray:
        """Times at which events were applied."""
        return np.array([e.time for e in self.events], dtype=float)


class EventDrivenIntegrator:
    """Adaptive ODE integrator with root detection and state resets.

    Without a root function, event function or scheduled event times this
    is a plain adaptive ODE integrator.

    Example:
        >>> integrator = EventDrivenIntegrator(
        ...     lambda t, y, p: -p['k'] * y,
        ...     root=threshold_root(0.25),
        ...     event=threshold_reset(0.25),
        ... )
        >>> result = integrator.run([1.0], np.linspace(0, 5, 51), {'k': 1.0})
    """

    def __init__(
        self,
        derivative: DerivativeFunction,
        root: RootFunction | None = None,
        event: EventFunction | None = None,
        config: IntegratorConfig | None = None,
        directions: Sequence[int] | None = None,
        event_times: Sequence[float] | None = None,
    ):
        """Initialize the integrator.

        Args:
            derivative: Derivative function f(t, y, p) -> dy/dt.
            root: Root function g(t, y, p) -> root values. A condition is
                triggered when its value crosses zero.
            event: Event function h(t, y, p) -> new state, applied at root
                crossings and at scheduled event times. Without it, root
                crossings are recorded and the state is left unchanged.
            config: Integrator options.
            directions: Per-condition crossing direction: +1 rising only,
                -1 falling only, 0 both (default).
            event_times: Times at which the event function is applied
                unconditionally.
        """
        self.derivative = derivative
        self.root = root
        self.event = event
        self.config = config if config is not None else IntegratorConfig()

        if directions is not None:
            if root is None:
                raise InvalidConfiguration("directions given without a root function")
            directions = np.atleast_1d(np.asarray(directions, dtype=int))
            if not np.all(np.isin(directions, (-1, 0, 1))):
                raise InvalidConfiguration(
                    f"Crossing directions must be -1, 0 or 1, got {directions.tolist()}"
                )
        self.directions = directions

        if event_times is None:
            self.event_times = np.array([], dtype=float)
        else:
            event_times = np.atleast_1d(np.asarray(event_times, dtype=float))
            if event_times.ndim != 1 or not np.all(np.isfinite(event_times)):
                raise InvalidConfiguration("event_times must be a finite 1D sequence")
            self.event_times = np.unique(event_times)

        if event is None and self.event_times.size:
            raise InvalidConfiguration("event_times given without an event function")
        if event is not None and root is None and not self.event_times.size:
            raise InvalidConfiguration(
                "Event function given without a root function or event times"
            )

    @classmethod
    def for_system(
        cls,
        system: HybridSystem,
        config: IntegratorConfig | None = None
    ) -> EventDrivenIntegrator:
        """Create an integrator for an object implementing HybridSystem."""
        if not isinstance(system, HybridSystem):
            raise InvalidConfiguration(
                f"{type(system).__name__} does not implement HybridSystem"
            )
        return cls(
            system.derivative,
            root=system.root,
            event=system.event,
            config=config,
            directions=getattr(system, 'directions', None),
            event_times=getattr(system, 'event_times', None),
        )

    @property
    def has_events(self) -> bool:
        """Whether anything can interrupt plain integration."""
        return self.root is not None or self.event_times.size > 0

    def run(
        self,
        y0: np.ndarray,
        times: Sequence[float] | np.ndarray,
        parameters: Parameters | None = None
    ) -> IntegrationResult:
        """Integrate from y0 over the requested output times.

        Args:
            y0: Initial state at times[0], shape (n_dims,).
            times: Strictly increasing output times.
            parameters: Parameter set passed to every callback.

        Returns:
            IntegrationResult with the trajectory and the applied events.

        Raises:
            InvalidConfiguration: Inconsistent inputs or callback outputs.
            NonConvergence: Step-size control failed to meet the tolerance.
            EventLoopDetected: Events kept firing at the same time point.
        """
        return _Run(self, y0, times, parameters).execute()

    def __repr__(self) -> str:
        return (
            f"EventDrivenIntegrator(method={self.config.method.name}, "
            f"root={self.root is not None}, event={self.event is not None})"
        )


class _Run:
    """Mutable state of a single integration run.

    Created by EventDrivenIntegrator.run and discarded when it returns.
    """

    def __init__(
        self,
        integrator: EventDrivenIntegrator,
        y0: np.ndarray,
        times: Sequence[float] | np.ndarray,
        parameters: Parameters | None
    ):
        self.integrator = integrator
        self.config = integrator.config
        self.params = MappingProxyType(dict(parameters or {}))
        self.times = _validate_times(times)
        self.y0 = _validate_state(y0)
        self.atol = np.asarray(self.config.atol, dtype=float)
        if self.atol.ndim > 0 and self.atol.shape != self.y0.shape:
            raise InvalidConfiguration(
                f"atol has shape {self.atol.shape}, state has shape {self.y0.shape}"
            )

        self.solver_class = solver_class(self.config.method)
        self.stats = IntegrationStats()
        self.phase = Phase.INTEGRATING
        self.n_roots: int | None = None

        t0, t_final = self.times[0], self.times[-1]
        scheduled = integrator.event_times
        in_span = (scheduled >= t0) & (scheduled <= t_final)
        if not np.all(in_span):
            logger.warning(
                "Dropping %d event time(s) outside [%g, %g]",
                int(np.sum(~in_span)), t0, t_final
            )
        self.scheduled = scheduled[in_span]

        # Index of the next requested output time / scheduled event time
        self.k = 0
        self.j = 0

        self.t = float(t0)
        self.y = self.y0.copy()
        self.g: np.ndarray | None = None
        self.h = self.config.first_step

        # Solver for the current stretch up to the next target time; dropped
        # at every event and whenever the target is reached
        self.solver: OdeSolver | None = None
        # Derivative calls made by the current solver.step(), None outside it
        self.trial_evals: int | None = None

        # (dense output, t_old, t_new, y_new, g_new) of a step with a crossing
        self.pending_step: tuple | None = None
        self.pending_event: tuple[float, np.ndarray, tuple[int, ...], str] | None = None
        self.last_event_time: float | None = None
        self.consecutive_events = 0

        self.events: list[EventRecord] = []
        self.out_times: list[float] = []
        self.out_states: list[np.ndarray] = []
        self.out_requested: list[bool] = []

    def execute(self) -> IntegrationResult:
        logger.debug(
            "Integrating %d-dimensional system over [%g, %g] with %d output times",
            self.y0.size, self.times[0], self.times[-1], len(self.times)
        )
        try:
            self._start()
            while self.phase is not Phase.DONE:
                if self.phase is Phase.INTEGRATING:
                    self._advance()
                elif self.phase is Phase.LOCATING_ROOT:
                    self._locate_root()
                elif self.phase is Phase.APPLYING_EVENT:
                    self._apply_event()
        except IntegrationError as exc:
            self.phase = Phase.FAILED
            logger.error("Integration failed: %s", exc)
            raise

        logger.debug(
            "Integration finished: %d steps, %d rejected, %d events",
            self.stats.n_steps, self.stats.n_rejected, self.stats.n_events
        )
        trajectory = Trajectory(
            times=np.array(self.out_times),
            states=np.array(self.out_states),
            requested=np.array(self.out_requested, dtype=bool),
        )
        return IntegrationResult(
            trajectory=trajectory,
            events=self.events,
            stats=self.stats
        )

    # Phases

    def _start(self) -> None:
        self.g = self._roots(self.t, self.y)
        self._arrive(segment_start=True)

    def _advance(self) -> None:
        """Take one accepted step toward the next output or event time."""
        if self.solver is None:
            self.solver = self._make_solver(self._next_target())
        solver = self.solver

        t_old = solver.t
        self._take_step()
        t_new, y_new = solver.t, solver.y.copy()
        self.h = solver.h_abs
        g_new = self._roots(t_new, y_new)

        if g_new is not None and self._crossings(self.g, g_new).size:
            self.pending_step = (solver.dense_output(), t_old, t_new, y_new, g_new)
            self.solver = None
            self.phase = Phase.LOCATING_ROOT
            return

        if solver.status == 'finished':
            self.solver = None
        self.t, self.y, self.g = t_new, y_new, g_new
        self._arrive(segment_start=False)

    def _locate_root(self) -> None:
        """Find the earliest crossing inside the pending step."""
        interpolant, t_old, t_new, y_new, g_new = self.pending_step
        self.pending_step = None
        crossed = self._crossings(self.g, g_new)

        crossing_times = np.array(
            [self._bisect(interpolant, t_old, t_new, i, self.g[i]) for i in crossed]
        )
        simultaneous = crossing_times - crossing_times.min() <= self.config.root_tol
        triggered = tuple(int(i) for i in crossed[simultaneous])
        t_event = float(crossing_times[simultaneous].max())

        self.t = t_event
        self.y = y_new if t_event == t_new else np.asarray(interpolant(t_event), dtype=float)
        self.pending_event = (t_event, self.y.copy(), triggered, ROOT)
        self.phase = Phase.APPLYING_EVENT

    def _apply_event(self) -> None:
        t_event, y_before, triggered, kind = self.pending_event
        self.pending_event = None

        if (self.last_event_time is not None
                and t_event - self.last_event_time <= self.config.root_tol):
            self.consecutive_events += 1
        else:
            self.consecutive_events = 1
        self.last_event_time = t_event

        if self.consecutive_events > self.config.max_consecutive_events:
            raise EventLoopDetected(
                f"{self.consecutive_events} consecutive events at the same time "
                "point; the event function does not clear the root condition",
                t_event, y_before
            )

        y_after = self._event(t_event, y_before)
        record = EventRecord(
            time=t_event,
            state_before=y_before,
            state_after=y_after.copy(),
            triggered=triggered,
            kind=kind,
        )
        self.events.append(record)
        self.stats.n_events += 1
        logger.debug(
            "%s event at t=%.10g (conditions %s)", kind, t_event, list(triggered)
        )

        # The requested row at an event time reports the post-event state
        at_output = t_event == self.times[self.k]
        if record.changed_state:
            self._record(t_event, y_before, requested=False)
        if not at_output:
            self._record(t_event, y_after, requested=False)

        self.t, self.y = t_event, y_after
        self.solver = None
        self.g = self._roots(self.t, self.y)
        self._arrive(segment_start=True)

    def _arrive(self, segment_start: bool) -> None:
        """Handle whatever is due at the current time, then pick the next phase."""
        if self.j < len(self.scheduled) and self.t == self.scheduled[self.j]:
            self.j += 1
            self.pending_event = (self.t, self.y.copy(), (), SCHEDULED)
            self.phase = Phase.APPLYING_EVENT
            return

        if (segment_start and self.g is not None
                and self.config.root_at_start is RootAtStartPolicy.FIRE):
            on_root = np.flatnonzero(self.g == 0)
            if on_root.size:
                triggered = tuple(int(i) for i in on_root)
                self.pending_event = (self.t, self.y.copy(), triggered, ROOT)
                self.phase = Phase.APPLYING_EVENT
                return

        if self.t == self.times[self.k]:
            self._record(self.t, self.y, requested=True)
            self.k += 1

        self.phase = Phase.DONE if self.k == len(self.times) else Phase.INTEGRATING

    # Stepping

    def _next_target(self) -> float:
        target = self.times[self.k]
        if self.j < len(self.scheduled):
            target = min(target, self.scheduled[self.j])
        return float(target)

    def _make_solver(self, target: float) -> OdeSolver:
        """Start a solver at the current state that stops exactly at target."""
        first_step = None if self.h is None else min(self.h, target - self.t)
        return self.solver_class(
            self._solver_fun, self.t, self.y, target,
            first_step=first_step,
            max_step=self.config.max_step,
            rtol=self.config.rtol,
            atol=self.atol,
        )

    def _take_step(self) -> None:
        """Advance the solver by one accepted step."""
        solver = self.solver
        self.trial_evals = 0
        try:
            message = solver.step()
            trials = self.trial_evals // solver.n_stages
        finally:
            self.trial_evals = None

        if solver.status == 'failed':
            raise NonConvergence(message, solver.t, solver.y)
        self.stats.n_steps += 1
        self.stats.n_rejected += max(trials - 1, 0)

    def _solver_fun(self, t: float, y: np.ndarray) -> np.ndarray:
        """Derivative as seen by the solver, with a cap on rejected trial steps.

        Each trial step calls the derivative n_stages times, so a call that
        starts a new trial inside one solver.step() follows a rejection.
        """
        if self.trial_evals is not None:
            n_stages = self.solver_class.n_stages
            rejected = self.trial_evals // n_stages
            starts_trial = self.trial_evals % n_stages == 0
            if starts_trial and rejected > self.config.max_shrink_attempts:
                self.stats.n_rejected += rejected
                raise NonConvergence(
                    f"Step rejected {rejected} times in a row without meeting "
                    "the error tolerance", self.solver.t, self.solver.y
                )
            self.trial_evals += 1
        return self._fun(t, y)

    def _crossings(self, g_old: np.ndarray, g_new: np.ndarray) -> np.ndarray:
        """Indices of conditions whose sign changed over a step."""
        rising = (g_old < 0) & (g_new >= 0)
        falling = (g_old > 0) & (g_new <= 0)
        if self.integrator.directions is not None:
            rising &= self.integrator.directions >= 0
            falling &= self.integrator.directions <= 0
        return np.flatnonzero(rising | falling)

    def _bisect(
        self,
        interpolant: DenseOutput,
        t_old: float,
        t_new: float,
        index: int,
        g_start: float
    ) -> float:
        """Bisect the step's dense output for a crossing of one condition.

        Returns the bracket end past the crossing, where the condition has
        already changed sign (or is zero).
        """
        a, b = t_old, t_new
        tol = self.config.root_tol + 4 * np.spacing(abs(b))
        sign_start = np.sign(g_start)

        while b - a > tol:
            mid = 0.5 * (a + b)
            if mid <= a or mid >= b:
                break
            g_mid = self._roots(mid, interpolant(mid))[index]
            if np.sign(g_mid) == sign_start:
                a = mid
            else:
                b = mid
        return float(b)

    # Callbacks

    def _fun(self, t: float, y: np.ndarray) -> np.ndarray:
        self.stats.n_derivative_evals += 1
        dy = np.asarray(self.integrator.derivative(t, y, self.params), dtype=float)
        if dy.shape != y.shape:
            raise InvalidConfiguration(
                f"Derivative returned shape {dy.shape}, state has shape {y.shape}",
                t, y
            )
        return dy

    def _roots(self, t: float, y: np.ndarray) -> np.ndarray | None:
        if self.integrator.root is None:
            return None
        self.stats.n_root_evals += 1
        g = np.atleast_1d(np.asarray(self.integrator.root(t, y, self.params), dtype=float))
        if g.ndim != 1:
            raise InvalidConfiguration(
                f"Root function must return a 1D sequence, got shape {g.shape}", t, y
            )

        if self.n_roots is None:
            self.n_roots = g.size
            directions = self.integrator.directions
            if directions is not None and directions.size != g.size:
                raise InvalidConfiguration(
                    f"{directions.size} crossing directions given for "
                    f"{g.size} root conditions", t, y
                )
        elif g.size != self.n_roots:
            raise InvalidConfiguration(
                f"Root function returned {g.size} values, expected {self.n_roots}",
                t, y
            )
        return g

    def _event(self, t: float, y: np.ndarray) -> np.ndarray:
        if self.integrator.event is None:
            return y.copy()
        y_new = np.array(self.integrator.event(t, y.copy(), self.params), dtype=float)
        if y_new.shape != y.shape:
            raise InvalidConfiguration(
                f"Event function returned shape {y_new.shape}, state has shape {y.shape}",
                t, y
            )
        return y_new

    def _record(self, t: float, y: np.ndarray, requested: bool) -> None:
        self.out_times.append(float(t))
        self.out_states.append(np.array(y, dtype=float))
        self.out_requested.append(requested)


def _validate_times(times: Sequence[float] | np.ndarray) -> np.ndarray:
    times = np.asarray(times, dtype=float)
    if times.ndim != 1 or times.size == 0:
        raise InvalidConfiguration(
            f"Time grid must be a non-empty 1D sequence, got shape {times.shape}"
        )
    if not np.all(np.isfinite(times)):
        raise InvalidConfiguration("Time grid contains non-finite values")
    if np.any(np.diff(times) <= 0):
        raise InvalidConfiguration("Time grid must be strictly increasing")
    return times


def _validate_state(y0: np.ndarray) -> np.ndarray:
    y0 = np.array(y0, dtype=float)
    if y0.ndim != 1 or y0.size == 0:
        raise InvalidConfiguration(
            f"Initial state must be a non-empty 1D vector, got shape {y0.shape}"
        )
    if not np.all(np.isfinite(y0)):
        raise InvalidConfiguration("Initial state contains non-finite values")
    return y0


def integrate(
    f: DerivativeFunction,
    y0: np.ndarray,
    times: Sequence[float] | np.ndarray,
    parameters: Parameters | None = None,
    root: RootFunction | None = None,
    event: EventFunction | None = None,
    directions: Sequence[int] | None = None,
    event_times: Sequence[float] | None = None,
    config: IntegratorConfig | None = None,
    **options
) -> IntegrationResult:
    """Integrate an ODE system with optional root-triggered events.

    Args:
        f: Derivative function f(t, y, p) -> dy/dt.
        y0: Initial state, shape (n_dims,).
        times: Strictly increasing output times.
        parameters: Parameter set passed to every callback.
        root: Root function g(t, y, p) -> root values.
        event: Event function h(t, y, p) -> new state.
        directions: Per-condition crossing direction (+1, -1 or 0).
        event_times: Times at which the event function is always applied.
        config: Integrator options.
        **options: Overrides for individual IntegratorConfig fields.

    Returns:
        IntegrationResult with trajectory and event information.
    """
    config = config if config is not None else IntegratorConfig()
    if options:
        config = config.replace(**options)

    integrator = EventDrivenIntegrator(
        f, root=root, event=event, config=config,
        directions=directions, event_times=event_times
    )
    return integrator.run(y0, times, parameters)
