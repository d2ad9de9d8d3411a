from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from ..orchestration.enums import CollaborationStatus, CollaborationType, VoteType, VotingStatus
from .agents import new_id

Confidence = Annotated[float, Field(ge=0.0, le=1.0)]


class CollaborationContext(BaseModel):
    description: str = Field(..., min_length=1)
    task_id: str | None = None
    topic: str | None = None


class CollaborationVote(BaseModel):
    agent_id: str
    vote: VoteType
    reason: str = ""
    timestamp: datetime


class CollaborationOutcome(BaseModel):
    decision: str = Field(..., min_length=1)
    reasoning: str = ""
    action_items: list[str] = Field(default_factory=list)
    timestamp: datetime | None = None


class CollaborationSession(BaseModel):
    id: str = Field(default_factory=new_id)
    type: CollaborationType
    initiator_id: str
    participant_ids: list[str]
    status: CollaborationStatus = CollaborationStatus.PENDING
    context: CollaborationContext
    votes: list[CollaborationVote] = Field(default_factory=list)
    outcome: CollaborationOutcome | None = None
    start_time: datetime
    end_time: datetime | None = None
    metadata: dict[str, object] = Field(default_factory=dict)

    def involves(self, agent_id: str) -> bool:
        return agent_id == self.initiator_id or agent_id in self.participant_ids

    def distinct_voters(self) -> set[str]:
        return {vote.agent_id for vote in self.votes}


class CollaborationRequest(BaseModel):
    type: CollaborationType
    initiator_id: str = Field(..., min_length=1)
    participant_ids: list[str] = Field(..., min_length=1)
    context: CollaborationContext
    metadata: dict[str, object] = Field(default_factory=dict)

    @field_validator("participant_ids")
    @classmethod
    def _unique_participants(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("participant ids must be unique")
        return value


class CollaborationResponse(BaseModel):
    agent_id: str = Field(..., min_length=1)
    vote: VoteType
    reasoning: str | None = None


class CompleteCollaborationRequest(BaseModel):
    outcome: CollaborationOutcome


class VotingOption(BaseModel):
    id: str = Field(..., min_length=1)
    description: str
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class BallotVote(BaseModel):
    agent_id: str
    option_id: str
    confidence: Confidence
    reasoning: str = ""
    timestamp: datetime


class Dissent(BaseModel):
    agent_id: str
    reason: str


class VotingResult(BaseModel):
    selected_option_id: str
    consensus_level: Confidence
    dissent: list[Dissent] = Field(default_factory=list)


class VotingSession(BaseModel):
    id: str = Field(default_factory=new_id)
    collaboration_id: str
    topic: str
    description: str = ""
    options: tuple[VotingOption, ...]
    votes: list[BallotVote] = Field(default_factory=list)
    status: VotingStatus = VotingStatus.OPEN
    deadline: datetime
    result: VotingResult | None = None
    created_at: datetime
    closed_at: datetime | None = None

    def option(self, option_id: str) -> VotingOption | None:
        for candidate in self.options:
            if candidate.id == option_id:
                return candidate
        return None


class VotingRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    description: str = ""
    options: list[VotingOption] = Field(..., min_length=1)
    duration_minutes: float | None = Field(default=None, gt=0.0)

    @field_validator("options")
    @classmethod
    def _unique_options(cls, value: list[VotingOption]) -> list[VotingOption]:
        ids = [option.id for option in value]
        if len(set(ids)) != len(ids):
            raise ValueError("option ids must be unique")
        return value


class CastVoteRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)
    option_id: str = Field(..., min_length=1)
    confidence: Confidence
    reasoning: str = ""
