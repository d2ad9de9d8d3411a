from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..orchestration.enums import AgentAction, AgentRole, AgentState, DecisionType

UnitScore = Annotated[float, Field(ge=0.0, le=1.0)]


def new_id() -> str:
    return str(uuid4())


class Location(BaseModel):
    room: str = Field(..., min_length=1)
    x: float = 0.0
    y: float = 0.0


class TaskReference(BaseModel):
    """Read-only view of a task, enough to classify decisions."""

    id: str = Field(..., min_length=1)
    status: str = Field("TODO")


class AgentMetrics(BaseModel):
    productivity: UnitScore = 0.5
    collaboration: UnitScore = 0.5
    decision_quality: UnitScore = 0.5
    task_completion_rate: UnitScore = 0.5
    break_time_efficiency: UnitScore = 0.5


class AgentActivity(BaseModel):
    """Counters the metrics policy derives behaviour scores from."""

    transitions: dict[AgentAction, int] = Field(default_factory=dict)
    decisions_made: int = Field(0, ge=0)
    decision_score_total: float = Field(0.0, ge=0.0)

    def count(self, action: AgentAction) -> int:
        return self.transitions.get(action, 0)

    @property
    def total_transitions(self) -> int:
        return sum(self.transitions.values())


class Agent(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    role: AgentRole
    state: AgentState = AgentState.IDLE
    location: Location | None = None
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    activity: AgentActivity = Field(default_factory=AgentActivity)
    last_state_change: datetime | None = None
    last_break_time: datetime | None = None
    current_task: TaskReference | None = None


class AgentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    role: AgentRole
    state: AgentState = AgentState.IDLE
    location: Location | None = None
    metrics: AgentMetrics | None = None
    current_task_id: str | None = None


class TransitionRequest(BaseModel):
    action: AgentAction


class TransitionResult(BaseModel):
    success: bool = True
    agent_id: str
    action: AgentAction
    previous_state: AgentState
    new_state: AgentState
    changed_at: datetime


class DecisionOption(BaseModel):
    id: str = Field(..., min_length=1)
    description: str
    impact: float = Field(..., ge=-1.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def score(self) -> float:
        return self.impact * self.confidence


class DecisionContext(BaseModel):
    reason: str
    task_id: str | None = None
    collaborator_ids: list[str] = Field(default_factory=list)


class DecisionExecution(BaseModel):
    """Outcome of a transition the decision cycle attempted."""

    action: AgentAction
    success: bool
    new_state: AgentState | None = None
    error: str | None = None


class AgentDecision(BaseModel):
    id: str = Field(default_factory=new_id)
    agent_id: str
    type: DecisionType
    context: DecisionContext
    options: list[DecisionOption] = Field(default_factory=list)
    selected_option: str | None = None
    created_at: datetime
    decided_at: datetime | None = None
    thinking_transition: DecisionExecution | None = None
    execution: DecisionExecution | None = None

    @model_validator(mode="after")
    def _check_selection(self) -> "AgentDecision":
        if (self.selected_option is None) != (self.decided_at is None):
            raise ValueError("decided_at must be set exactly when selected_option is set")
        if self.selected_option is not None:
            if not self.options:
                raise ValueError("cannot select an option from an empty option list")
            if self.selected_option not in {option.id for option in self.options}:
                raise ValueError(f"selected option {self.selected_option!r} is not among the options")
        return self

    def option(self, option_id: str) -> DecisionOption | None:
        for candidate in self.options:
            if candidate.id == option_id:
                return candidate
        return None
