"""Tests for trajectories and the adaptive integrator without events."""

import numpy as np
import pytest
from scipy.integrate import RK23, RK45

from hybrid_ode.dynamics import (
    EventDrivenIntegrator,
    IntegrationMethod,
    IntegratorConfig,
    InvalidConfiguration,
    NonConvergence,
    Trajectory,
    integrate,
    threshold_reset,
    threshold_root,
)
from hybrid_ode.dynamics.solvers import solver_class


def decay(t, y, p):
    return -p['k'] * y


class TestTrajectory:
    """Tests for Trajectory class."""

    def test_basic_creation(self):
        """Test basic trajectory creation."""
        times = np.array([0, 1, 2, 3])
        states = np.array([[0, 0], [1, 1], [2, 2], [3, 3]])

        traj = Trajectory(times, states)

        assert traj.n_points == 4
        assert traj.n_dims == 2
        assert traj.t_start == 0
        assert traj.t_end == 3
        assert traj.requested.all()

    def test_1d_trajectory(self):
        """Test 1D trajectory."""
        traj = Trajectory(np.array([0, 1, 2]), np.array([0, 1, 2]))

        assert traj.n_dims == 1
        assert traj.states.shape == (3, 1)

    def test_interpolation(self):
        """Test trajectory interpolation."""
        times = np.array([0, 1, 2])
        states = np.array([[0, 0], [1, 1], [2, 2]])

        traj = Trajectory(times, states)

        state = traj.interpolate(0.5)
        np.testing.assert_array_almost_equal(state, [0.5, 0.5])

    def test_interpolation_is_right_continuous_at_events(self):
        """At a duplicated time the post-event row wins."""
        traj = Trajectory(
            times=[0.0, 1.0, 1.0, 2.0],
            states=[[1.0], [0.5], [0.0], [0.0]],
            requested=[True, False, True, True],
        )

        assert traj.interpolate(1.0)[0] == 0.0
        assert traj.interpolate(0.5)[0] == pytest.approx(0.5)
        np.testing.assert_array_almost_equal(
            traj.interpolate(np.array([0.0, 2.0]))[:, 0], [1.0, 0.0]
        )

    def test_requested_and_event_views(self):
        """Requested rows and event rows split the trajectory."""
        traj = Trajectory(
            times=[0.0, 1.0, 1.0, 2.0],
            states=[[1.0], [0.5], [0.0], [0.0]],
            requested=[True, False, True, True],
        )

        requested = traj.at_requested()
        np.testing.assert_array_equal(requested.times, [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(requested.states[:, 0], [1.0, 0.0, 0.0])

        events = traj.event_points()
        assert events.n_points == 1
        assert events.states[0, 0] == 0.5

    def test_samples(self):
        """Samples are (time, state) pairs."""
        traj = Trajectory([0.0, 1.0], [[1.0, 2.0], [3.0, 4.0]])
        samples = traj.samples()

        assert len(samples) == 2
        t, state = samples[1]
        assert t == 1.0
        np.testing.assert_array_equal(state, [3.0, 4.0])

    def test_slice_time(self):
        traj = Trajectory(np.arange(5.0), np.arange(5.0))
        sliced = traj.slice_time(1.0, 3.0)

        np.testing.assert_array_equal(sliced.times, [1.0, 2.0, 3.0])

    def test_arrays_are_read_only(self):
        """A finished trajectory cannot be modified in place."""
        traj = Trajectory([0.0, 1.0], [[1.0], [2.0]])

        with pytest.raises(ValueError):
            traj.states[0, 0] = 5.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="Length mismatch"):
            Trajectory([0.0, 1.0, 2.0], [[1.0], [2.0]])

    def test_decreasing_times(self):
        with pytest.raises(ValueError, match="non-decreasing"):
            Trajectory([0.0, 2.0, 1.0], [[1.0], [2.0], [3.0]])


class TestIntegrators:
    """Tests for plain adaptive integration."""

    def test_exponential_decay_matches_analytic(self):
        """dy/dt = -k y matches y0 exp(-k t) at every output time."""
        times = np.linspace(0, 5, 51)
        config = IntegratorConfig(rtol=1e-8, atol=1e-10)

        result = EventDrivenIntegrator(decay, config=config).run(
            [2.0], times, {'k': 0.7}
        )

        expected = 2.0 * np.exp(-0.7 * times)
        np.testing.assert_allclose(
            result.trajectory.states[:, 0], expected, rtol=1e-6, atol=1e-10
        )

    def test_bogacki_shampine(self):
        """The lower-order pair also meets a looser tolerance."""
        times = np.linspace(0, 5, 11)
        config = IntegratorConfig(method=IntegrationMethod.BOSH23, rtol=1e-6)

        result = EventDrivenIntegrator(decay, config=config).run(
            [1.0], times, {'k': 1.0}
        )

        np.testing.assert_allclose(
            result.trajectory.states[:, 0], np.exp(-times), rtol=1e-4
        )

    @pytest.mark.parametrize("method, expected", [
        (IntegrationMethod.DOPRI45, RK45),
        (IntegrationMethod.BOSH23, RK23),
    ])
    def test_solver_class(self, method, expected):
        assert solver_class(method) is expected

    def test_rejected_steps_are_counted(self):
        """A large first step on a fast decay is rejected before it shrinks."""
        result = integrate(decay, [1.0], [0.0, 1.0], {'k': 50.0}, first_step=1.0)

        assert result.stats.n_rejected > 0
        assert result.trajectory.final_state[0] == pytest.approx(np.exp(-50.0), abs=1e-8)

    def test_one_row_per_output_time(self):
        """Without events the trajectory rows are exactly the output times."""
        times = np.array([0.0, 0.1, 0.5, 2.0, 2.05, 10.0])

        result = integrate(decay, [1.0], times, {'k': 0.3})

        np.testing.assert_array_equal(result.trajectory.times, times)
        assert result.trajectory.requested.all()
        assert result.events == []

    def test_determinism(self):
        """Identical inputs give bit-identical trajectories."""
        def f(t, y, p):
            return np.array([y[1], -p['omega'] ** 2 * y[0]])

        times = np.linspace(0, 10, 101)
        first = integrate(f, [1.0, 0.0], times, {'omega': 2.0})
        second = integrate(f, [1.0, 0.0], times, {'omega': 2.0})

        np.testing.assert_array_equal(first.trajectory.times, second.trajectory.times)
        np.testing.assert_array_equal(first.trajectory.states, second.trajectory.states)

    def test_harmonic_energy_conservation(self):
        """Energy of the harmonic oscillator stays constant."""
        def f(t, y, p):
            return np.array([y[1], -y[0]])

        times = np.linspace(0, 4 * np.pi, 200)
        traj = integrate(f, [1.0, 0.0], times).trajectory

        energies = traj.states[:, 0] ** 2 + traj.states[:, 1] ** 2
        assert np.std(energies) < 1e-5

    def test_stiff_system(self):
        """Mildly stiff decay is still resolved."""
        result = integrate(decay, [1.0], [0.0, 0.1], {'k': 100.0})

        assert abs(result.trajectory.final_state[0] - np.exp(-10)) < 1e-5

    def test_single_output_time(self):
        """A grid with one time returns the initial state."""
        result = integrate(decay, [3.0], [1.5], {'k': 1.0})

        assert result.trajectory.n_points == 1
        assert result.trajectory.t_start == 1.5
        assert result.trajectory.final_state[0] == 3.0

    def test_max_step(self):
        """Internal steps never exceed max_step."""
        result = integrate(decay, [1.0], [0.0, 1.0], {'k': 1.0}, max_step=0.01)

        assert result.stats.n_steps >= 100

    def test_parameters_are_read_only(self):
        """Callbacks cannot modify the parameter set."""
        def f(t, y, p):
            p['k'] = 2.0
            return -y

        with pytest.raises(TypeError):
            integrate(f, [1.0], [0.0, 1.0], {'k': 1.0})

    def test_stats(self):
        result = integrate(decay, [1.0], np.linspace(0, 1, 5), {'k': 1.0})
        stats = result.stats.to_dict()

        assert stats['n_steps'] > 0
        assert stats['n_derivative_evals'] > stats['n_steps']
        assert stats['n_root_evals'] == 0
        assert stats['n_events'] == 0

    def test_unknown_option(self):
        with pytest.raises(InvalidConfiguration, match="Unknown integrator options"):
            integrate(decay, [1.0], [0.0, 1.0], {'k': 1.0}, tolerance=1e-3)


class TestInvalidConfiguration:
    """Inputs that must be rejected before or during a run."""

    @pytest.mark.parametrize("times", [
        [0.0, 1.0, 1.0, 2.0],
        [0.0, 2.0, 1.0],
        [[0.0, 1.0]],
        [],
        [0.0, np.nan],
    ])
    def test_bad_time_grid(self, times):
        with pytest.raises(InvalidConfiguration):
            integrate(decay, [1.0], times, {'k': 1.0})

    def test_bad_initial_state(self):
        with pytest.raises(InvalidConfiguration):
            integrate(decay, [[1.0, 2.0]], [0.0, 1.0], {'k': 1.0})

    def test_derivative_dimension_mismatch(self):
        def f(t, y, p):
            return np.array([1.0, 2.0])

        with pytest.raises(InvalidConfiguration, match="Derivative returned shape"):
            integrate(f, [1.0], [0.0, 1.0])

    def test_root_dimension_changes(self):
        def root(t, y, p):
            return np.ones(1 if t < 0.5 else 2)

        with pytest.raises(InvalidConfiguration, match="Root function returned 2 values"):
            integrate(decay, [1.0], [0.0, 1.0], {'k': 1.0}, root=root)

    def test_event_dimension_mismatch(self):
        def event(t, y, p):
            return np.zeros(3)

        with pytest.raises(InvalidConfiguration, match="Event function returned shape"):
            integrate(
                decay, [1.0], [0.0, 3.0], {'k': 1.0},
                root=threshold_root(0.25), event=event
            )

    def test_atol_shape(self):
        with pytest.raises(InvalidConfiguration, match="atol"):
            integrate(decay, [1.0], [0.0, 1.0], {'k': 1.0}, atol=(1e-9, 1e-9))

    @pytest.mark.parametrize("options", [
        {'rtol': 0.0},
        {'atol': -1.0},
        {'first_step': -0.1},
        {'max_step': 0.0},
        {'max_shrink_attempts': 0},
        {'root_tol': 0.0},
        {'max_consecutive_events': 0},
    ])
    def test_bad_config(self, options):
        with pytest.raises(InvalidConfiguration):
            IntegratorConfig(**options)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            IntegratorConfig(rtol=-1.0)

    def test_directions_without_root(self):
        with pytest.raises(InvalidConfiguration, match="directions"):
            EventDrivenIntegrator(decay, directions=[1])

    def test_bad_direction_value(self):
        with pytest.raises(InvalidConfiguration, match="directions must be"):
            EventDrivenIntegrator(decay, root=threshold_root(0.25), directions=[2])

    def test_direction_count_mismatch(self):
        integrator = EventDrivenIntegrator(
            decay, root=threshold_root(0.25), directions=[1, -1]
        )
        with pytest.raises(InvalidConfiguration, match="crossing directions"):
            integrator.run([1.0], [0.0, 1.0], {'k': 1.0})

    def test_event_without_trigger(self):
        with pytest.raises(InvalidConfiguration, match="without a root function"):
            EventDrivenIntegrator(decay, event=threshold_reset(0.25))

    def test_event_times_without_event(self):
        with pytest.raises(InvalidConfiguration, match="without an event function"):
            EventDrivenIntegrator(decay, event_times=[1.0])


class TestNonConvergence:
    """Step-size control failures."""

    def test_non_finite_derivative(self):
        """A derivative that turns into NaN cannot meet any tolerance."""
        def f(t, y, p):
            return -y if t == 0 else np.full_like(y, np.nan)

        with pytest.raises(NonConvergence) as exc_info:
            integrate(f, [1.0], [0.0, 1.0], max_shrink_attempts=5)

        assert exc_info.value.time == 0.0
        np.testing.assert_array_equal(exc_info.value.state, [1.0])
        assert "rejected 6 times" in str(exc_info.value)

    def test_finite_time_blow_up(self):
        """dy/dt = y^2 from y = 1 has no solution past t = 1."""
        def f(t, y, p):
            return y ** 2

        with pytest.raises(NonConvergence) as exc_info:
            integrate(f, [1.0], [0.0, 2.0])

        assert exc_info.value.time == pytest.approx(1.0, abs=1e-3)
