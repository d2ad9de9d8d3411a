from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.logging import get_logger
from ..dependencies import get_runtime
from ..orchestration.enums import AgentAction
from ..orchestration.exceptions import (
    AgentOfficeError,
    ConditionNotMetError,
    CoreValidationError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from ..runtime import OfficeRuntime
from ..schemas.agents import (
    Agent,
    AgentCreateRequest,
    AgentDecision,
    AgentMetrics,
    TransitionRequest,
    TransitionResult,
)
from ..schemas.collaboration import (
    CastVoteRequest,
    CollaborationOutcome,
    CollaborationRequest,
    CollaborationResponse,
    CollaborationSession,
    CompleteCollaborationRequest,
    VotingRequest,
    VotingSession,
)

logger = get_logger(name=__name__)

router = APIRouter()


def _raise_http(exc: AgentOfficeError) -> NoReturn:
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (InvalidTransitionError, ConditionNotMetError, InvalidStateError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, CoreValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:  # pragma: no cover - every core error is classified above
        code = status.HTTP_400_BAD_REQUEST
    logger.info("api_request_rejected", error_type=type(exc).__name__, status_code=code, error=str(exc))
    raise HTTPException(status_code=code, detail=str(exc)) from exc


@router.get("/agents", response_model=list[Agent], tags=["agents"])
async def list_agents(runtime: OfficeRuntime = Depends(get_runtime)) -> list[Agent]:
    return await runtime.registry.list()


@router.post("/agents", response_model=Agent, status_code=status.HTTP_201_CREATED, tags=["agents"])
async def create_agent(
    payload: AgentCreateRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> Agent:
    try:
        task = await runtime.tasks.get(payload.current_task_id) if payload.current_task_id else None
    except AgentOfficeError as exc:
        _raise_http(exc)
    agent = Agent(
        name=payload.name,
        role=payload.role,
        state=payload.state,
        location=payload.location,
        metrics=payload.metrics or AgentMetrics(),
        current_task=task,
    )
    return await runtime.registry.create(agent)


@router.get("/agents/{agent_id}", response_model=Agent, tags=["agents"])
async def get_agent(agent_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> Agent:
    try:
        return await runtime.registry.get(agent_id)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.get("/agents/{agent_id}/actions", response_model=list[AgentAction], tags=["agents"])
async def list_valid_actions(agent_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> list[AgentAction]:
    try:
        agent = await runtime.registry.get(agent_id)
    except AgentOfficeError as exc:
        _raise_http(exc)
    return runtime.state_machine.valid_actions(agent.state)


@router.post("/agents/{agent_id}/transitions", response_model=TransitionResult, tags=["agents"])
async def transition_agent(
    agent_id: str,
    payload: TransitionRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> TransitionResult:
    try:
        return await runtime.state_machine.apply_transition(agent_id, payload.action)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post("/agents/{agent_id}/decisions", response_model=AgentDecision, tags=["agents"])
async def make_decision(agent_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> AgentDecision:
    try:
        return await runtime.decisions.decide(agent_id)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post(
    "/collaborations",
    response_model=CollaborationSession,
    status_code=status.HTTP_201_CREATED,
    tags=["collaborations"],
)
async def initiate_collaboration(
    payload: CollaborationRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> CollaborationSession:
    try:
        return await runtime.collaborations.initiate(
            payload.type,
            payload.initiator_id,
            payload.participant_ids,
            payload.context,
            metadata=payload.metadata,
        )
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.get("/collaborations/agents/{agent_id}/active", response_model=list[CollaborationSession], tags=["collaborations"])
async def list_active_collaborations(
    agent_id: str,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> list[CollaborationSession]:
    return await runtime.collaborations.find_active(agent_id)


@router.get("/collaborations/{session_id}", response_model=CollaborationSession, tags=["collaborations"])
async def get_collaboration(session_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> CollaborationSession:
    try:
        return await runtime.collaborations.get(session_id)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post("/collaborations/{session_id}/responses", response_model=CollaborationSession, tags=["collaborations"])
async def respond_to_collaboration(
    session_id: str,
    payload: CollaborationResponse,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> CollaborationSession:
    try:
        return await runtime.collaborations.respond(session_id, payload.agent_id, payload.vote, payload.reasoning)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post("/collaborations/{session_id}/complete", response_model=CollaborationSession, tags=["collaborations"])
async def complete_collaboration(
    session_id: str,
    payload: CompleteCollaborationRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> CollaborationSession:
    try:
        return await runtime.collaborations.complete(session_id, payload.outcome)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post(
    "/collaborations/{session_id}/votings",
    response_model=VotingSession,
    status_code=status.HTTP_201_CREATED,
    tags=["votings"],
)
async def open_voting(
    session_id: str,
    payload: VotingRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> VotingSession:
    try:
        return await runtime.votings.open(
            session_id,
            payload.topic,
            payload.description,
            payload.options,
            duration_minutes=payload.duration_minutes,
        )
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.get("/collaborations/{session_id}/votings", response_model=list[VotingSession], tags=["votings"])
async def list_votings(session_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> list[VotingSession]:
    try:
        await runtime.collaborations.get(session_id)
    except AgentOfficeError as exc:
        _raise_http(exc)
    return await runtime.votings.list_for_collaboration(session_id)


@router.get("/votings/{voting_id}", response_model=VotingSession, tags=["votings"])
async def get_voting(voting_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> VotingSession:
    try:
        return await runtime.votings.get(voting_id)
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.post("/votings/{voting_id}/votes", response_model=VotingSession, tags=["votings"])
async def cast_vote(
    voting_id: str,
    payload: CastVoteRequest,
    runtime: OfficeRuntime = Depends(get_runtime),
) -> VotingSession:
    try:
        return await runtime.votings.cast_vote(
            voting_id,
            payload.agent_id,
            payload.option_id,
            payload.confidence,
            payload.reasoning,
        )
    except AgentOfficeError as exc:
        _raise_http(exc)


@router.get("/votings/{voting_id}/outcome", response_model=CollaborationOutcome, tags=["votings"])
async def get_voting_outcome(voting_id: str, runtime: OfficeRuntime = Depends(get_runtime)) -> CollaborationOutcome:
    try:
        return await runtime.votings.summarize_outcome(voting_id)
    except AgentOfficeError as exc:
        _raise_http(exc)
