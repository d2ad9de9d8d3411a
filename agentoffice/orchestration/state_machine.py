"""Agent state machine service.

Transitions are looked up in an immutable table of ``TransitionRule`` records
supplied at construction. A rule may name a guard; guards are resolved once
from the mapping passed to the machine and evaluated against the agent and
the current time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from ..core.clock import Clock, utc_now
from ..core.config import MetricsPolicySettings, StateMachineSettings
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..core.metrics import record_metrics_recomputed, record_transition
from ..schemas.agents import Agent, AgentDecision, AgentMetrics, TransitionResult
from ..services.notifications import CoreEvent, EventBus
from ..services.registry import AgentRegistry
from ..services.scoring import ActivityMetricsPolicy, MetricsPolicy, decision_score
from .enums import AgentAction, AgentState, EventType
from .exceptions import ConditionNotMetError, InvalidTransitionError

logger = get_logger(name=__name__)

Guard = Callable[[Agent, datetime], bool]

BREAK_INTERVAL_GUARD = "break_interval"


@dataclass(frozen=True, slots=True)
class TransitionRule:
    from_state: AgentState
    action: AgentAction
    to_state: AgentState
    guard: str | None = None


DEFAULT_TRANSITIONS: tuple[TransitionRule, ...] = (
    TransitionRule(AgentState.IDLE, AgentAction.START_TASK, AgentState.WORKING),
    TransitionRule(AgentState.WORKING, AgentAction.REQUEST_HELP, AgentState.COLLABORATING),
    TransitionRule(AgentState.WORKING, AgentAction.MAKE_DECISION, AgentState.THINKING),
    TransitionRule(AgentState.WORKING, AgentAction.COMPLETE_TASK, AgentState.IDLE),
    TransitionRule(AgentState.IDLE, AgentAction.TAKE_BREAK, AgentState.BREAK, guard=BREAK_INTERVAL_GUARD),
    TransitionRule(AgentState.BREAK, AgentAction.RESUME_WORK, AgentState.IDLE),
    TransitionRule(AgentState.IDLE, AgentAction.PROVIDE_HELP, AgentState.COLLABORATING),
)


def elapsed_since_break(agent: Agent, now: datetime) -> timedelta | None:
    """Time since the agent's last break, or ``None`` if it never took one."""
    if agent.last_break_time is None:
        return None
    return now - agent.last_break_time


class BreakIntervalGuard:
    def __init__(self, interval: timedelta) -> None:
        self.interval = interval

    def __call__(self, agent: Agent, now: datetime) -> bool:
        elapsed = elapsed_since_break(agent, now)
        return elapsed is None or elapsed >= self.interval


class AgentStateMachine:
    def __init__(
        self,
        registry: AgentRegistry,
        *,
        settings: StateMachineSettings | None = None,
        transitions: Iterable[TransitionRule] = DEFAULT_TRANSITIONS,
        guards: Mapping[str, Guard] | None = None,
        metrics_policy: MetricsPolicy | None = None,
        events: EventBus | None = None,
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or StateMachineSettings()
        self._metrics_policy = metrics_policy or ActivityMetricsPolicy(MetricsPolicySettings())
        self._events = events
        self._locks = locks or KeyedLock()
        self._clock: Clock = clock or utc_now

        resolved_guards: dict[str, Guard] = {
            BREAK_INTERVAL_GUARD: BreakIntervalGuard(timedelta(minutes=self._settings.break_interval_minutes)),
        }
        resolved_guards.update(guards or {})
        self._guards = MappingProxyType(resolved_guards)
        self._rules = MappingProxyType(self._index_rules(transitions, resolved_guards))

    @staticmethod
    def _index_rules(
        transitions: Iterable[TransitionRule],
        guards: Mapping[str, Guard],
    ) -> dict[tuple[AgentState, AgentAction], TransitionRule]:
        rules: dict[tuple[AgentState, AgentAction], TransitionRule] = {}
        for rule in transitions:
            key = (rule.from_state, rule.action)
            if key in rules:
                raise ValueError(f"Duplicate transition rule for {rule.from_state.value} + {rule.action.value}")
            if rule.guard is not None and rule.guard not in guards:
                raise ValueError(f"Unknown guard {rule.guard!r} on {rule.from_state.value} + {rule.action.value}")
            rules[key] = rule
        return rules

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    @property
    def rules(self) -> tuple[TransitionRule, ...]:
        return tuple(self._rules.values())

    def valid_actions(self, state: AgentState) -> list[AgentAction]:
        return [rule.action for rule in self._rules.values() if rule.from_state == state]

    def find_rule(self, state: AgentState, action: AgentAction) -> TransitionRule | None:
        return self._rules.get((state, action))

    async def apply_transition(self, agent_id: str, action: AgentAction) -> TransitionResult:
        async with self._locks.hold(agent_id):
            agent = await self._registry.get(agent_id)
            previous = agent.state
            rule = self.find_rule(previous, action)
            if rule is None:
                record_transition(from_state=previous.value, action=action.value, outcome="invalid")
                logger.info("agent_transition_rejected", agent_id=agent_id, state=previous.value, action=action.value)
                raise InvalidTransitionError(previous, action)

            now = self._clock()
            if rule.guard is not None and not self._guards[rule.guard](agent, now):
                record_transition(from_state=previous.value, action=action.value, outcome="condition_not_met")
                logger.info(
                    "agent_transition_guard_failed",
                    agent_id=agent_id,
                    state=previous.value,
                    action=action.value,
                    guard=rule.guard,
                )
                raise ConditionNotMetError(previous, action, rule.guard)

            agent.state = rule.to_state
            agent.last_state_change = now
            if rule.to_state is AgentState.BREAK and self._settings.stamp_break_time:
                agent.last_break_time = now
            agent.activity.transitions[action] = agent.activity.count(action) + 1
            saved = await self._registry.save(agent)

        record_transition(from_state=previous.value, action=action.value, outcome="success")
        logger.info(
            "agent_state_transitioned",
            agent_id=agent_id,
            agent=saved.name,
            from_state=previous.value,
            to_state=saved.state.value,
            action=action.value,
        )
        await self._publish(CoreEvent(EventType.AGENT_STATE_CHANGED, saved, actor=agent_id))
        return TransitionResult(
            agent_id=agent_id,
            action=action,
            previous_state=previous,
            new_state=saved.state,
            changed_at=now,
        )

    async def recompute_metrics(self, agent_id: str, *, decision: AgentDecision | None = None) -> AgentMetrics:
        """Fold an optional decision into the agent's activity and recompute its scores."""
        async with self._locks.hold(agent_id):
            agent = await self._registry.get(agent_id)
            if decision is not None and decision.selected_option is not None:
                option = decision.option(decision.selected_option)
                if option is not None:
                    agent.activity.decisions_made += 1
                    agent.activity.decision_score_total += decision_score(option)
            agent.metrics = self._metrics_policy.recompute(agent)
            saved = await self._registry.save(agent)
        record_metrics_recomputed()
        logger.debug("agent_metrics_recomputed", agent_id=agent_id, metrics=saved.metrics.model_dump())
        return saved.metrics

    async def _publish(self, event: CoreEvent) -> None:
        if self._events is not None:
            await self._events.publish(event)
