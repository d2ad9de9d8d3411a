from __future__ import annotations

from dataclasses import dataclass

from ..core.config import MetricsPolicySettings
from ..orchestration.enums import AgentAction
from ..schemas.agents import Agent, AgentMetrics, DecisionOption

WORK_ACTIONS = (AgentAction.START_TASK, AgentAction.COMPLETE_TASK, AgentAction.MAKE_DECISION)
HELP_ACTIONS = (AgentAction.REQUEST_HELP, AgentAction.PROVIDE_HELP)


def decision_score(option: DecisionOption) -> float:
    """Map an option's impact x confidence from [-1, 1] onto [0, 1]."""
    return _clamp((option.score + 1.0) / 2.0)


@dataclass(slots=True)
class ActivityObservation:
    productivity: float | None
    collaboration: float | None
    decision_quality: float | None
    task_completion_rate: float | None
    break_time_efficiency: float | None


class MetricsPolicy:
    def recompute(self, agent: Agent) -> AgentMetrics:
        raise NotImplementedError


class ActivityMetricsPolicy(MetricsPolicy):
    """Blend activity ratios into the previous scores with exponential smoothing.

    Scores without any supporting activity keep their previous value, so a
    freshly seeded agent retains its seeded metrics until it starts acting.
    """

    def __init__(self, settings: MetricsPolicySettings | None = None) -> None:
        self._alpha = (settings or MetricsPolicySettings()).smoothing_factor

    def observe(self, agent: Agent) -> ActivityObservation:
        activity = agent.activity
        total = activity.total_transitions
        started = activity.count(AgentAction.START_TASK)
        completed = activity.count(AgentAction.COMPLETE_TASK)
        breaks = activity.count(AgentAction.TAKE_BREAK)
        resumes = activity.count(AgentAction.RESUME_WORK)

        return ActivityObservation(
            productivity=_ratio(sum(activity.count(action) for action in WORK_ACTIONS), total),
            collaboration=_ratio(sum(activity.count(action) for action in HELP_ACTIONS), total),
            decision_quality=_ratio(activity.decision_score_total, activity.decisions_made),
            task_completion_rate=_ratio(completed, started),
            break_time_efficiency=_ratio(min(resumes, breaks), breaks),
        )

    def recompute(self, agent: Agent) -> AgentMetrics:
        previous = agent.metrics
        observed = self.observe(agent)
        return AgentMetrics(
            productivity=self._blend(previous.productivity, observed.productivity),
            collaboration=self._blend(previous.collaboration, observed.collaboration),
            decision_quality=self._blend(previous.decision_quality, observed.decision_quality),
            task_completion_rate=self._blend(previous.task_completion_rate, observed.task_completion_rate),
            break_time_efficiency=self._blend(previous.break_time_efficiency, observed.break_time_efficiency),
        )

    def _blend(self, previous: float, observed: float | None) -> float:
        if observed is None:
            return _clamp(previous)
        return _clamp(previous + self._alpha * (observed - previous))


def _ratio(numerator: float, denominator: float) -> float | None:
    if denominator <= 0:
        return None
    return _clamp(numerator / denominator)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
