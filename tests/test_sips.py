"""Tests for the SIPS engine, rejuvenation kernels and callbacks."""

from __future__ import annotations

import numpy as np
import pytest

from agent.config import AgentConfig
from agent.policies import PolicyConfig, ReplanParams, replan_policy_init, replan_policy_step
from env.search import AStarPlanner
from inference.callbacks import CombinedCallback, GoalProbabilityLogger, PrintGoalProbsCallback
from inference.kernels import IdentityKernel, ReplanKernel
from inference.sips import SIPS
from inference.strata import goal_strata
from inference.streams import ObservationBatch, initial_observation, observation_stream
from tests.conftest import GOALS, FailingPlanner, make_world_config
from world.errors import DegenerateWeightsError, InversePlanningError, ModelConfigurationError, StratificationError
from world.model import WorldConfig

FEATURES = ["xpos", "ypos", "has:gem1", "has:gem2", "has:gem3"]


def _make_sips(world_config, **kwargs) -> SIPS:
    return SIPS(world_config, **kwargs)


def _run_to(sips, trajectory, n_particles, t, rng, strata=GOALS):
    state = sips.initialize(n_particles, rng, init_strata=goal_strata(strata))
    for batch in observation_stream(trajectory[: t + 1], FEATURES):
        sips.update(state, batch, rng)
    return state


class TestConfiguration:
    """Tests for engine construction"""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"resample_cond": "sometimes"},
            {"rejuv_cond": "often"},
            {"period": 0},
            {"ess_threshold": 0.0},
            {"resample_method": "magic"},
        ],
    )
    def test_rejects_bad_options(self, world_config, kwargs):
        with pytest.raises(ModelConfigurationError):
            _make_sips(world_config, **kwargs)

    def test_replan_kernel_needs_scorable_policy(self, domain, world_config):
        policy = PolicyConfig(
            init_fn=replan_policy_init,
            step_fn=replan_policy_step,
            step_args=(ReplanParams(domain=domain, planner=AStarPlanner(domain)),),
        )
        agent = AgentConfig(belief=world_config.agent.belief, goal=world_config.agent.goal, policy=policy)
        config = WorldConfig(agent=agent, env=world_config.env, obs=world_config.obs)
        with pytest.raises(ModelConfigurationError):
            _make_sips(config, rejuv_cond="periodic")
        # without rejuvenation the same model is fine
        assert _make_sips(config).goal_support == GOALS


class TestInitialization:
    """Tests for stratified and unstratified initialization"""

    @pytest.mark.parametrize("n_particles", [3, 12, 99])
    def test_even_strata(self, world_config, rng, n_particles):
        sips = _make_sips(world_config, strict_strata=True)
        state = sips.initialize(n_particles, rng, init_strata=goal_strata(GOALS))
        goals = [tr.goal for tr in state.traces]
        for goal in GOALS:
            assert goals.count(goal) == n_particles // 3
        np.testing.assert_allclose(state.log_weights, 0.0, atol=1e-12)

    def test_uneven_strata_are_reweighted(self, world_config, rng):
        sips = _make_sips(world_config)
        state = sips.initialize(100, rng, init_strata=goal_strata(GOALS))
        goals = [tr.goal for tr in state.traces]
        assert [goals.count(g) for g in GOALS] == [34, 33, 33]
        np.testing.assert_allclose(state.goal_probs(GOALS), [1 / 3] * 3)

    def test_strict_strata_rejects_uneven_split(self, world_config, rng):
        sips = _make_sips(world_config, strict_strata=True)
        with pytest.raises(StratificationError):
            sips.initialize(10, rng, init_strata=goal_strata(GOALS))

    def test_too_few_particles(self, world_config, rng):
        with pytest.raises(StratificationError):
            _make_sips(world_config).initialize(2, rng, init_strata=goal_strata(GOALS))

    def test_unstratified_draws_from_prior(self, world_config, rng):
        state = _make_sips(world_config).initialize(300, rng)
        assert len(state) == 300
        assert state.t == 0
        np.testing.assert_allclose(state.log_weights, 0.0)
        probs = state.goal_probs(GOALS)
        assert np.all(probs > 0.2)

    def test_initial_observation_weights(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config)
        obs = initial_observation(left_trajectory, FEATURES)
        state = sips.initialize(6, rng, init_strata=goal_strata(GOALS), init_observation=obs)
        # all hypotheses share the start state, so the observation does not separate them
        np.testing.assert_allclose(state.log_weights, state.log_weights[0])
        assert state.log_weights[0] < 0.0


class TestUpdate:
    """Tests for the per-batch update"""

    def test_resample_makes_weights_uniform(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none")
        state = _run_to(sips, left_trajectory, 30, 2, rng)
        before = state.log_marginal_likelihood()
        sips.resample(state, rng)
        np.testing.assert_allclose(state.normalized_weights(), np.full(30, 1 / 30))
        assert state.ess() == pytest.approx(30.0)
        assert state.log_marginal_likelihood() == pytest.approx(before)
        assert all(0 <= a < 30 for a in state.ancestors)

    def test_out_of_order_batch(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config)
        state = _run_to(sips, left_trajectory, 9, 2, rng)
        stale = ObservationBatch(t=2, observations={2: {"xpos": 2.0}})
        with pytest.raises(ValueError):
            sips.update(state, stale, rng)

    def test_sparse_batch_advances_through_gaps(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config)
        state = sips.initialize(9, rng, init_strata=goal_strata(GOALS))
        batch = ObservationBatch(t=3, observations={3: {"xpos": left_trajectory[3]["xpos"]}})
        sips.update(state, batch, rng)
        assert state.t == 3
        assert all(tr.horizon == 3 for tr in state.traces)
        assert all(len(tr.step(2).observed) == 0 for tr in state.traces)

    def test_impossible_observation(self, domain, rng):
        config = make_world_config(domain, flip_prob=0.0)
        sips = _make_sips(config)
        state = sips.initialize(9, rng, init_strata=goal_strata(GOALS))
        # gem1 is two moves away, so nobody can hold it after one step
        batch = ObservationBatch(t=1, observations={1: {"has:gem1": True}})
        with pytest.raises(DegenerateWeightsError) as excinfo:
            sips.update(state, batch, rng)
        assert excinfo.value.t == 1
        assert isinstance(excinfo.value, InversePlanningError)

    def test_periodic_resampling(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="periodic", period=2)
        state = sips.initialize(12, rng, init_strata=goal_strata(GOALS))
        flags = [sips.update(state, batch, rng)["resampled"] for batch in observation_stream(left_trajectory, FEATURES)]
        assert flags == [False, True, False, True, False]
        assert state.n_updates == 5

    def test_periodic_rejuvenation_counts_batches(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none", rejuv_cond="periodic", period=3, rejuv_kernel=IdentityKernel())
        state = sips.initialize(6, rng, init_strata=goal_strata(GOALS))
        flags = [sips.update(state, batch, rng)["rejuvenated"] for batch in observation_stream(left_trajectory, FEATURES)]
        assert flags == [False, False, True, False, False]

    def test_particles_follow_resampled_ancestry(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none")
        state = _run_to(sips, left_trajectory, 12, 2, rng)
        parents = list(state.traces)
        sips.resample(state, rng)
        particles = state.particles
        assert len(particles) == 12
        for i, particle in enumerate(particles):
            assert particle.ancestor == state.ancestors[i]
            assert particle.trace is parents[particle.ancestor]
            assert particle.log_weight == 0.0

    def test_ancestry_resets_after_plain_step(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none")
        state = _run_to(sips, left_trajectory, 12, 2, rng)
        sips.resample(state, rng)
        sips.update(state, ObservationBatch(t=3, observations={3: {"xpos": left_trajectory[3]["xpos"]}}), rng)
        np.testing.assert_array_equal(state.ancestors, np.arange(12))
        assert [p.ancestor for p in state.particles] == list(range(12))


class TestRejuvenation:
    """Tests for rejuvenation kernels"""

    def test_identity_kernel_changes_nothing(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none", rejuv_kernel=IdentityKernel())
        state = _run_to(sips, left_trajectory, 12, 3, rng)
        traces = list(state.traces)
        weights = state.log_weights.copy()
        n_accepted = sips.rejuvenate(state, rng)
        assert n_accepted == 12
        assert all(a is b for a, b in zip(traces, state.traces))
        np.testing.assert_array_equal(state.log_weights, weights)

    def test_replan_kernel_keeps_observations(self, world_config, rng, left_trajectory):
        sips = _make_sips(world_config, resample_cond="none")
        state = _run_to(sips, left_trajectory, 12, 3, rng)
        kernel = ReplanKernel(window=2, n_iters=3)
        for trace in state.traces:
            moved, n_accepted = kernel(rng, sips.model, trace)
            assert 0 <= n_accepted <= 3
            assert moved.horizon == trace.horizon
            assert moved.goal == trace.goal
            for t in range(trace.horizon + 1):
                assert dict(moved.step(t).observed) == dict(trace.step(t).observed)
            # steps before the window are shared, not copied
            assert moved.step(1) is trace.step(1)

    def test_replan_kernel_on_empty_trace(self, world_config, rng):
        sips = _make_sips(world_config)
        state = sips.initialize(3, rng)
        moved, n_accepted = ReplanKernel()(rng, sips.model, state.traces[0])
        assert moved is state.traces[0]
        assert n_accepted == 0

    def test_bad_window(self):
        with pytest.raises(ModelConfigurationError):
            ReplanKernel(window=0)


class TestGoalInference:
    """End-to-end goal inference on the corridor"""

    def test_recovers_true_goal(self, world_config, left_trajectory):
        sips = _make_sips(world_config, resample_cond="ess", rejuv_cond="periodic", period=2)
        logger = GoalProbabilityLogger(GOALS)
        state = sips.run(
            100,
            observation_stream(left_trajectory, FEATURES),
            init_strata=goal_strata(GOALS),
            callback=logger,
            rng=np.random.default_rng(0),
        )
        probs = state.goal_probs(GOALS)
        assert probs[1] > 0.9
        assert probs[0] + probs[2] < 0.1
        assert logger.times == [0, 1, 2, 3, 4, 5]
        assert logger.goal_prob_matrix().shape == (3, 6)
        np.testing.assert_allclose(logger.goal_prob_matrix()[:, 0], [1 / 3] * 3)

    def test_same_seed_same_result(self, world_config, left_trajectory):
        def run(seed):
            logger = GoalProbabilityLogger(GOALS)
            sips = _make_sips(world_config, rejuv_cond="periodic")
            state = sips.run(
                30,
                observation_stream(left_trajectory, FEATURES),
                init_strata=goal_strata(GOALS),
                callback=logger,
                rng=seed,
            )
            return logger.goal_prob_matrix(), state.log_weights

        probs_a, weights_a = run(11)
        probs_b, weights_b = run(11)
        np.testing.assert_array_equal(probs_a, probs_b)
        np.testing.assert_array_equal(weights_a, weights_b)

    def test_unreachable_goal_never_gains(self, domain, left_trajectory):
        goals = GOALS[1:]
        planner = FailingPlanner(AStarPlanner(domain), unreachable=[GOALS[2]])
        config = make_world_config(domain, planner=planner, goals=goals, prob_replan=0.0, act_epsilon=0.0)
        sips = _make_sips(config, resample_cond="none")
        logger = GoalProbabilityLogger(goals)
        sips.run(
            10,
            observation_stream(left_trajectory, FEATURES),
            init_strata=goal_strata(goals),
            callback=logger,
            rng=3,
        )
        unreachable = logger.goal_prob_matrix()[1]
        assert np.all(np.diff(unreachable) <= 1e-12)
        assert unreachable[-1] < unreachable[0]

    def test_iterate_yields_each_step(self, world_config, left_trajectory):
        sips = _make_sips(world_config)
        snapshots = list(sips.iterate(9, observation_stream(left_trajectory, FEATURES), init_strata=goal_strata(GOALS), rng=5))
        assert [s.t for s in snapshots] == [0, 1, 2, 3, 4, 5]
        assert snapshots[-1].goal_support == GOALS
        assert snapshots[-1].goal_probs().sum() == pytest.approx(1.0)


class TestCallbacks:
    """Tests for per-step observers"""

    def test_snapshots_are_read_only(self, world_config, left_trajectory):
        attempts = []

        def tamper(snapshot):
            with pytest.raises(ValueError):
                snapshot.weights[0] = 1.0
            with pytest.raises(ValueError):
                snapshot.log_weights[0] = 0.0
            attempts.append(snapshot.t)

        state = _make_sips(world_config).run(
            6,
            observation_stream(left_trajectory, FEATURES),
            init_strata=goal_strata(GOALS),
            callback=tamper,
            rng=2,
        )
        assert attempts == [0, 1, 2, 3, 4, 5]
        assert state.normalized_weights().sum() == pytest.approx(1.0)

    def test_print_and_combined(self, world_config, left_trajectory):
        lines = []
        printer = PrintGoalProbsCallback(GOALS, names=["up", "left", "right"], printer=lines.append)
        logger = GoalProbabilityLogger(GOALS)
        _make_sips(world_config).run(
            6,
            observation_stream(left_trajectory, FEATURES, batch_size=2),
            init_strata=goal_strata(GOALS),
            callback=CombinedCallback(printer, logger),
            rng=4,
        )
        assert len(lines) == 4
        assert lines[0].startswith("t=00 up=0.333 left=0.333 right=0.333")
        assert logger.times == [0, 2, 4, 5]

    def test_names_must_match_goals(self):
        with pytest.raises(ValueError):
            PrintGoalProbsCallback(GOALS, names=["only-one"])
