"""Tests for goal priors, budget laws, beliefs and the replanning policy."""

from __future__ import annotations

import math

import pytest

from agent.beliefs import direct_belief_config
from agent.distributions import FixedBudget, ShiftedNegativeBinomial
from agent.goals import (
    CategoricalGoalPrior,
    UniformGoalPrior,
    markov_goal_config,
    static_goal_config,
    sticky_transition,
)
from agent.policies import (
    PlanState,
    deterministic_replan_config,
    plan_is_usable,
    replan_policy_config,
)
from env.domain import NOOP
from env.gridworld import HasItem
from env.search import AStarPlanner
from tests.conftest import GOALS, FailingPlanner
from world.errors import ModelConfigurationError, PlannerFailure


class TestBudgetDistributions:
    """Tests for search-budget laws"""

    def test_shifted_neg_binom_respects_shift(self, rng):
        dist = ShiftedNegativeBinomial(2, 0.3, 5)
        samples = [dist.sample(rng) for _ in range(200)]
        assert min(samples) >= 5

    def test_shifted_neg_binom_pmf_sums_to_one(self):
        dist = ShiftedNegativeBinomial(2, 0.3, 1)
        total = sum(math.exp(dist.logpdf(k)) for k in range(1, 400))
        assert total == pytest.approx(1.0, abs=1e-9)
        assert dist.logpdf(0) == -math.inf

    def test_shifted_neg_binom_rejects_bad_params(self):
        with pytest.raises(ModelConfigurationError):
            ShiftedNegativeBinomial(0, 0.5)
        with pytest.raises(ModelConfigurationError):
            ShiftedNegativeBinomial(2, 1.5)

    def test_fixed_budget(self, rng):
        dist = FixedBudget(7)
        assert dist.sample(rng) == 7
        assert dist.logpdf(7) == 0.0
        assert dist.logpdf(8) == -math.inf


class TestGoalModels:
    """Tests for goal priors and goal configurations"""

    def test_uniform_prior(self, rng):
        prior = UniformGoalPrior(GOALS)
        assert prior.logpdf(GOALS[0]) == pytest.approx(-math.log(3))
        assert prior.logpdf(HasItem("nothing")) == -math.inf
        assert prior.sample(rng) in GOALS

    def test_uniform_prior_rejects_duplicates(self):
        with pytest.raises(ModelConfigurationError):
            UniformGoalPrior([GOALS[0], GOALS[0]])

    def test_categorical_prior(self, rng):
        prior = CategoricalGoalPrior(GOALS, [0.0, 1.0, 0.0])
        assert prior.sample(rng) == GOALS[1]
        assert prior.logpdf(GOALS[0]) == -math.inf
        assert prior.logpdf(GOALS[1]) == pytest.approx(0.0)

    def test_static_goal_never_changes(self, rng):
        config = static_goal_config(UniformGoalPrior(GOALS))
        goal = config.initialize(rng)
        for t in range(1, 5):
            assert config.step(rng, t, goal, None) == goal
        assert config.support == GOALS
        assert config.init_logpdf(goal) == pytest.approx(-math.log(3))

    def test_markov_goal_switches(self, rng):
        prior = UniformGoalPrior(GOALS[:2])
        stay = markov_goal_config(prior, sticky_transition(prior, 0.0))
        switch = markov_goal_config(prior, sticky_transition(prior, 1.0))
        assert stay.step(rng, 1, GOALS[0], None) == GOALS[0]
        assert switch.step(rng, 1, GOALS[0], None) == GOALS[1]

    def test_markov_goal_rejects_bad_rows(self):
        prior = UniformGoalPrior(GOALS)
        with pytest.raises(ModelConfigurationError):
            markov_goal_config(prior, lambda goal: [1.0, 0.0])


class TestDirectBelief:
    """Tests for the direct belief model"""

    def test_belief_tracks_environment(self, domain, rng):
        config = direct_belief_config()
        state = domain.initial_state()
        assert config.initialize(rng, state) is state
        moved = domain.transition(state, "left")
        assert config.step(rng, 1, state, "left", moved) is moved


class TestReplanPolicy:
    """Tests for the replanning state machine"""

    def test_first_step_plans_and_acts(self, domain, rng):
        policy = deterministic_replan_config(domain, AStarPlanner(domain))
        belief = domain.initial_state()
        plan_state, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
        assert plan_state.replanned
        assert plan_state.forced
        assert action == "left"
        assert plan_state.step_index == 1

    def test_follows_plan_without_replanning(self, domain, rng):
        policy = deterministic_replan_config(domain, AStarPlanner(domain))
        belief = domain.initial_state()
        plan_state, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
        belief = domain.transition(belief, action)
        plan_state, action = policy.step(rng, 2, plan_state, belief, HasItem("gem2"))
        assert not plan_state.replanned
        assert action == "left"

    def test_deviation_forces_replan(self, domain, rng):
        policy = deterministic_replan_config(domain, AStarPlanner(domain))
        belief = domain.initial_state()
        plan_state, _ = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
        # the agent went right instead of left
        belief = domain.transition(belief, "right")
        assert not plan_is_usable(plan_state, belief, domain)
        plan_state, action = policy.step(rng, 2, plan_state, belief, HasItem("gem2"))
        assert plan_state.replanned and plan_state.forced
        assert action == "left"

    def test_unreachable_goal_yields_noop(self, domain, rng):
        planner = FailingPlanner(AStarPlanner(domain), unreachable=[GOALS[0]])
        policy = deterministic_replan_config(domain, planner)
        plan_state, action = policy.step(rng, 1, PlanState(), domain.initial_state(), GOALS[0])
        assert action == NOOP
        assert plan_state.failed

    def test_planner_failure_exception_is_recovered(self, domain, rng):
        class RaisingPlanner:
            def plan(self, state, goal, budget=None, rng=None):
                raise PlannerFailure(goal)

        policy = deterministic_replan_config(domain, RaisingPlanner())
        plan_state, action = policy.step(rng, 1, PlanState(), domain.initial_state(), GOALS[0])
        assert action == NOOP
        assert plan_state.failed

    def test_full_action_noise_picks_alternative(self, domain, rng):
        policy = replan_policy_config(domain, AStarPlanner(domain), prob_replan=0.0, budget_dist=FixedBudget(50), act_epsilon=1.0)
        belief = domain.initial_state()
        for _ in range(20):
            _, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
            assert action != "left"
            assert domain.available(belief, action)

    def test_always_replan(self, domain, rng):
        policy = replan_policy_config(domain, AStarPlanner(domain), prob_replan=1.0, budget_dist=FixedBudget(50), act_epsilon=0.0)
        belief = domain.initial_state()
        plan_state, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
        belief = domain.transition(belief, action)
        plan_state, _ = policy.step(rng, 2, plan_state, belief, HasItem("gem2"))
        assert plan_state.replanned
        assert not plan_state.forced

    def test_replan_override(self, domain, rng):
        policy = replan_policy_config(domain, AStarPlanner(domain), prob_replan=0.0, budget_dist=FixedBudget(50), act_epsilon=0.0)
        belief = domain.initial_state()
        plan_state, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"))
        belief = domain.transition(belief, action)
        forced, _ = policy.step(rng, 2, plan_state, belief, HasItem("gem2"), replan=True)
        kept, _ = policy.step(rng, 2, plan_state, belief, HasItem("gem2"), replan=False)
        assert forced.replanned
        assert not kept.replanned

    def test_replan_log_prior(self, domain, rng):
        policy = replan_policy_config(domain, AStarPlanner(domain), prob_replan=0.25, budget_dist=FixedBudget(50), act_epsilon=0.0)
        belief = domain.initial_state()
        # no plan yet: replanning is certain
        assert policy.replan_log_prior(PlanState(), belief, True) == 0.0
        assert policy.replan_log_prior(PlanState(), belief, False) == -math.inf

        plan_state, action = policy.step(rng, 1, PlanState(), belief, HasItem("gem2"), replan=True)
        belief = domain.transition(belief, action)
        assert policy.replan_log_prior(plan_state, belief, True) == pytest.approx(math.log(0.25))
        assert policy.replan_log_prior(plan_state, belief, False) == pytest.approx(math.log(0.75))

    def test_rejects_bad_probabilities(self, domain):
        with pytest.raises(ModelConfigurationError):
            replan_policy_config(domain, AStarPlanner(domain), prob_replan=1.5)
        with pytest.raises(ModelConfigurationError):
            replan_policy_config(domain, AStarPlanner(domain), act_epsilon=-0.1)

    def test_goal_reached_gives_noop(self, domain, rng):
        policy = deterministic_replan_config(domain, AStarPlanner(domain))
        state = domain.initial_state()
        for act in ["left"] * 4 + ["pickup:gem2"]:
            state = domain.transition(state, act)
        plan_state, action = policy.step(rng, 6, PlanState(), state, HasItem("gem2"))
        assert action == NOOP
        assert not plan_state.failed
        assert len(plan_state.plan) == 0
