from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from ..core.clock import Clock, utc_now
from ..core.config import DecisionSettings, StateMachineSettings
from ..core.logging import get_logger
from ..core.metrics import record_decision, record_decision_failure
from ..schemas.agents import Agent, AgentDecision, DecisionContext, DecisionExecution, DecisionOption
from ..services.notifications import CoreEvent, EventBus
from ..services.registry import AgentRegistry
from .enums import AgentAction, AgentState, DecisionType, EventType
from .exceptions import CoreValidationError, TransitionError
from .state_machine import AgentStateMachine, elapsed_since_break

logger = get_logger(name=__name__)


@dataclass(slots=True)
class DecisionEnvironment:
    now: datetime
    available_collaborators: list[Agent] = field(default_factory=list)


OptionGenerator = Callable[[Agent, DecisionEnvironment], list[DecisionOption]]


TASK_OPTIONS: tuple[DecisionOption, ...] = (
    DecisionOption(id="continue", description="Continue working on the current task", impact=0.7, confidence=0.8),
    DecisionOption(id="request_help", description="Request help from another agent", impact=0.5, confidence=0.6),
    DecisionOption(id="break", description="Take a short break to refresh", impact=0.3, confidence=0.4),
)

BREAK_OPTIONS: tuple[DecisionOption, ...] = (
    DecisionOption(id="take_break", description="Take a 15-minute break", impact=0.8, confidence=0.9),
    DecisionOption(id="continue_work", description="Continue working", impact=0.4, confidence=0.5),
)

COLLABORATION_OPTIONS: tuple[DecisionOption, ...] = (
    DecisionOption(
        id="start_collaboration",
        description="Start collaboration with {available} available agents",
        impact=0.7,
        confidence=0.6,
    ),
    DecisionOption(id="wait", description="Wait for a new task assignment", impact=0.3, confidence=0.8),
)

# Option ids without an entry here have no side effect.
OPTION_ACTIONS: Mapping[str, AgentAction] = MappingProxyType(
    {
        "continue": AgentAction.START_TASK,
        "request_help": AgentAction.REQUEST_HELP,
        "break": AgentAction.TAKE_BREAK,
        "take_break": AgentAction.TAKE_BREAK,
        "start_collaboration": AgentAction.PROVIDE_HELP,
    }
)


def _task_options(agent: Agent, environment: DecisionEnvironment) -> list[DecisionOption]:
    if agent.current_task is None:
        return []
    return [option.model_copy() for option in TASK_OPTIONS]


def _break_options(agent: Agent, environment: DecisionEnvironment) -> list[DecisionOption]:
    return [option.model_copy() for option in BREAK_OPTIONS]


def _collaboration_options(agent: Agent, environment: DecisionEnvironment) -> list[DecisionOption]:
    available = len(environment.available_collaborators)
    return [
        option.model_copy(update={"description": option.description.format(available=available)})
        for option in COLLABORATION_OPTIONS
    ]


OPTION_STRATEGIES: Mapping[DecisionType, OptionGenerator] = MappingProxyType(
    {
        DecisionType.TASK_RELATED: _task_options,
        DecisionType.BREAK_TIME: _break_options,
        DecisionType.COLLABORATION: _collaboration_options,
    }
)


def select_option(options: Sequence[DecisionOption]) -> DecisionOption:
    """Highest impact x confidence wins; ties keep the earliest option."""
    if not options:
        raise CoreValidationError("Cannot select from an empty option list")
    best = options[0]
    for candidate in options[1:]:
        if candidate.score > best.score:
            best = candidate
    return best


class DecisionEngine:
    def __init__(
        self,
        registry: AgentRegistry,
        state_machine: AgentStateMachine,
        *,
        settings: DecisionSettings | None = None,
        state_settings: StateMachineSettings | None = None,
        strategies: Mapping[DecisionType, OptionGenerator] = OPTION_STRATEGIES,
        option_actions: Mapping[str, AgentAction] = OPTION_ACTIONS,
        events: EventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._state_machine = state_machine
        self._settings = settings or DecisionSettings()
        self._break_interval = timedelta(minutes=(state_settings or StateMachineSettings()).break_interval_minutes)
        self._strategies = MappingProxyType(dict(strategies))
        self._option_actions = MappingProxyType(dict(option_actions))
        self._events = events
        self._clock: Clock = clock or utc_now

    def classify(self, agent: Agent, now: datetime) -> DecisionType:
        if agent.current_task is not None:
            return DecisionType.TASK_RELATED
        elapsed = elapsed_since_break(agent, now)
        if elapsed is None or elapsed > self._break_interval:
            return DecisionType.BREAK_TIME
        return DecisionType.COLLABORATION

    async def decide(self, agent_id: str) -> AgentDecision:
        agent = await self._registry.get(agent_id)
        created_at = self._clock()
        decision_type = self.classify(agent, created_at)

        thinking, _ = await self._attempt(agent_id, AgentAction.MAKE_DECISION, stage="thinking")

        environment = await self._gather_environment(agent, decision_type, created_at)
        options = self._strategies[decision_type](agent, environment)
        selected = select_option(options)

        decision = AgentDecision(
            agent_id=agent_id,
            type=decision_type,
            context=self._context(agent, decision_type, environment),
            options=options,
            selected_option=selected.id,
            created_at=created_at,
            decided_at=self._clock(),
            thinking_transition=thinking,
        )

        failure: Exception | None = None
        action = self._option_actions.get(selected.id)
        if action is not None:
            decision.execution, failure = await self._attempt(agent_id, action, stage="execution")

        await self._state_machine.recompute_metrics(agent_id, decision=decision)

        if failure is not None and self._settings.strict_execution:
            raise failure

        record_decision(decision_type=decision_type.value, selected_option=decision.selected_option)
        logger.info(
            "agent_decision_made",
            agent_id=agent_id,
            decision_id=decision.id,
            decision_type=decision_type.value,
            selected_option=decision.selected_option,
            executed=decision.execution.success if decision.execution else None,
        )
        if self._events is not None:
            await self._events.publish(CoreEvent(EventType.DECISION_MADE, decision, actor=agent_id))
        return decision

    async def _attempt(
        self,
        agent_id: str,
        action: AgentAction,
        *,
        stage: str,
    ) -> tuple[DecisionExecution, Exception | None]:
        try:
            result = await self._state_machine.apply_transition(agent_id, action)
        except TransitionError as exc:
            record_decision_failure(stage=stage)
            logger.warning(
                "decision_transition_failed",
                agent_id=agent_id,
                action=action.value,
                stage=stage,
                error=str(exc),
            )
            return DecisionExecution(action=action, success=False, error=str(exc)), exc
        return DecisionExecution(action=action, success=True, new_state=result.new_state), None

    async def _gather_environment(
        self,
        agent: Agent,
        decision_type: DecisionType,
        now: datetime,
    ) -> DecisionEnvironment:
        if decision_type is not DecisionType.COLLABORATION:
            return DecisionEnvironment(now=now)
        idle = await self._registry.find(lambda candidate: candidate.state is AgentState.IDLE)
        return DecisionEnvironment(
            now=now,
            available_collaborators=[candidate for candidate in idle if candidate.id != agent.id],
        )

    @staticmethod
    def _context(agent: Agent, decision_type: DecisionType, environment: DecisionEnvironment) -> DecisionContext:
        if decision_type is DecisionType.TASK_RELATED and agent.current_task is not None:
            return DecisionContext(
                reason=f"Evaluating progress on task {agent.current_task.id}",
                task_id=agent.current_task.id,
            )
        if decision_type is DecisionType.BREAK_TIME:
            return DecisionContext(reason="Considering taking a break due to extended work period")
        return DecisionContext(
            reason="Looking for collaboration opportunities",
            collaborator_ids=[candidate.id for candidate in environment.available_collaborators],
        )
