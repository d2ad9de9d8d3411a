from __future__ import annotations

from enum import Enum


class AgentRole(str, Enum):
    CEO = "CEO"
    CTO = "CTO"
    ENGINEER = "ENGINEER"
    MARKETER = "MARKETER"
    SALES = "SALES"


class AgentState(str, Enum):
    IDLE = "IDLE"
    WORKING = "WORKING"
    COLLABORATING = "COLLABORATING"
    BREAK = "BREAK"
    THINKING = "THINKING"


class AgentAction(str, Enum):
    START_TASK = "START_TASK"
    COMPLETE_TASK = "COMPLETE_TASK"
    REQUEST_HELP = "REQUEST_HELP"
    PROVIDE_HELP = "PROVIDE_HELP"
    TAKE_BREAK = "TAKE_BREAK"
    RESUME_WORK = "RESUME_WORK"
    MAKE_DECISION = "MAKE_DECISION"


class DecisionType(str, Enum):
    TASK_RELATED = "TASK_RELATED"
    COLLABORATION = "COLLABORATION"
    BREAK_TIME = "BREAK_TIME"


class CollaborationType(str, Enum):
    TASK_HELP = "TASK_HELP"
    DECISION_MAKING = "DECISION_MAKING"
    KNOWLEDGE_SHARING = "KNOWLEDGE_SHARING"


class CollaborationStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class VoteType(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ABSTAIN = "ABSTAIN"


class VotingStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class EventType(str, Enum):
    AGENT_STATE_CHANGED = "agent.state_changed"
    DECISION_MADE = "agent.decision_made"
    COLLABORATION_INITIATED = "collaboration.initiated"
    COLLABORATION_RESPONSE_RECEIVED = "collaboration.response_received"
    COLLABORATION_STATUS_CHANGED = "collaboration.status_changed"
    VOTE_CAST = "voting.vote_cast"
    VOTING_CLOSED = "voting.closed"


__all__ = [
    "AgentAction",
    "AgentRole",
    "AgentState",
    "CollaborationStatus",
    "CollaborationType",
    "DecisionType",
    "EventType",
    "VoteType",
    "VotingStatus",
]
