from __future__ import annotations

from typing import Iterable

from .enums import AgentAction, AgentState


class AgentOfficeError(RuntimeError):
    """Base class for agent behaviour core failures."""


class NotFoundError(AgentOfficeError):
    """Raised when a referenced entity cannot be resolved."""

    entity = "entity"

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} {entity_id} not found")


class AgentNotFoundError(NotFoundError):
    entity = "Agent"


class TaskNotFoundError(NotFoundError):
    entity = "Task"


class SessionNotFoundError(NotFoundError):
    entity = "Collaboration session"


class VotingSessionNotFoundError(NotFoundError):
    entity = "Voting session"


class InvalidTransitionError(AgentOfficeError):
    """Raised when no transition rule matches the agent's state and the requested action."""

    def __init__(self, from_state: AgentState, action: AgentAction) -> None:
        self.from_state = from_state
        self.action = action
        super().__init__(f"Invalid transition: {from_state.value} -> {action.value}")


class ConditionNotMetError(AgentOfficeError):
    """Raised when a transition matches but its guard evaluates false."""

    def __init__(self, from_state: AgentState, action: AgentAction, guard: str) -> None:
        self.from_state = from_state
        self.action = action
        self.guard = guard
        super().__init__(f"Transition conditions not met: {from_state.value} -> {action.value} ({guard})")


class InvalidStateError(AgentOfficeError):
    """Raised when an operation violates a session lifecycle."""


class VotingClosedError(InvalidStateError):
    def __init__(self, voting_id: str) -> None:
        self.voting_id = voting_id
        super().__init__(f"Voting session {voting_id} is closed")


class CoreValidationError(AgentOfficeError):
    """Raised for malformed requests, votes or option references."""


class NotAParticipantError(CoreValidationError):
    def __init__(self, agent_id: str, session_id: str) -> None:
        self.agent_id = agent_id
        self.session_id = session_id
        super().__init__(f"Agent {agent_id} is not part of session {session_id}")


class InvalidOptionError(CoreValidationError):
    def __init__(self, option_id: str, voting_id: str) -> None:
        self.option_id = option_id
        self.voting_id = voting_id
        super().__init__(f"Option {option_id} is not offered by voting session {voting_id}")


class AgentUnavailableError(CoreValidationError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = list(names)
        super().__init__(f"Some agents are not available: {', '.join(self.names)}")


TransitionError = (InvalidTransitionError, ConditionNotMetError)


__all__ = [
    "AgentNotFoundError",
    "AgentOfficeError",
    "AgentUnavailableError",
    "ConditionNotMetError",
    "CoreValidationError",
    "InvalidOptionError",
    "InvalidStateError",
    "InvalidTransitionError",
    "NotAParticipantError",
    "NotFoundError",
    "SessionNotFoundError",
    "TaskNotFoundError",
    "TransitionError",
    "VotingClosedError",
    "VotingSessionNotFoundError",
]
