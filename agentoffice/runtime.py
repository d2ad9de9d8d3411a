from __future__ import annotations

from dataclasses import dataclass

from .core.clock import Clock, utc_now
from .core.config import Settings
from .orchestration.collaboration import CollaborationSessionManager, InMemoryCollaborationStore
from .orchestration.decisions import DecisionEngine
from .orchestration.state_machine import AgentStateMachine
from .orchestration.voting import InMemoryVotingStore, VotingSessionManager
from .services.notifications import EventBus, log_event
from .services.registry import AgentRegistry, InMemoryAgentRegistry, InMemoryTaskDirectory, TaskDirectory
from .services.scoring import ActivityMetricsPolicy
from .services.sweeper import VotingDeadlineSweeper


@dataclass(slots=True)
class OfficeRuntime:
    """Every core component, wired against one registry and one event bus."""

    settings: Settings
    registry: AgentRegistry
    tasks: TaskDirectory
    events: EventBus
    state_machine: AgentStateMachine
    decisions: DecisionEngine
    collaborations: CollaborationSessionManager
    votings: VotingSessionManager
    sweeper: VotingDeadlineSweeper

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        registry: AgentRegistry | None = None,
        tasks: TaskDirectory | None = None,
        events: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> "OfficeRuntime":
        registry = registry or InMemoryAgentRegistry()
        tasks = tasks or InMemoryTaskDirectory()
        if events is None:
            events = EventBus()
            if settings.observability.event_log_enabled:
                events.subscribe(log_event)

        state_machine = AgentStateMachine(
            registry,
            settings=settings.state_machine,
            metrics_policy=ActivityMetricsPolicy(settings.metrics),
            events=events,
            clock=clock,
        )
        decisions = DecisionEngine(
            registry,
            state_machine,
            settings=settings.decisions,
            state_settings=settings.state_machine,
            events=events,
            clock=clock,
        )
        collaborations = CollaborationSessionManager(
            registry,
            store=InMemoryCollaborationStore(),
            state_machine=state_machine,
            settings=settings.collaboration,
            events=events,
            clock=clock,
        )
        votings = VotingSessionManager(
            collaborations,
            store=InMemoryVotingStore(),
            settings=settings.voting,
            events=events,
            clock=clock,
        )
        return cls(
            settings=settings,
            registry=registry,
            tasks=tasks,
            events=events,
            state_machine=state_machine,
            decisions=decisions,
            collaborations=collaborations,
            votings=votings,
            sweeper=VotingDeadlineSweeper(votings),
        )
