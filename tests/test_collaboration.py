from __future__ import annotations

import asyncio

import pytest

from agentoffice.core.config import CollaborationSettings
from agentoffice.orchestration.collaboration import (
    CollaborationSessionManager,
    approval_ratio,
    evaluate_quorum,
)
from agentoffice.orchestration.enums import (
    AgentRole,
    AgentState,
    CollaborationStatus,
    CollaborationType,
    EventType,
    VoteType,
)
from agentoffice.orchestration.exceptions import (
    AgentNotFoundError,
    AgentUnavailableError,
    CoreValidationError,
    InvalidStateError,
    NotAParticipantError,
    SessionNotFoundError,
)
from agentoffice.schemas.agents import Agent
from agentoffice.schemas.collaboration import CollaborationContext, CollaborationOutcome
from agentoffice.services.registry import InMemoryAgentRegistry


async def _staff(office, *states: AgentState) -> list[Agent]:
    return [
        await office.registry.create(Agent(name=f"Agent {index}", role=AgentRole.ENGINEER, state=state))
        for index, state in enumerate(states)
    ]


async def _session(office, initiator: Agent, participants: list[Agent], type=CollaborationType.DECISION_MAKING):
    return await office.collaborations.initiate(
        type,
        initiator.id,
        [participant.id for participant in participants],
        CollaborationContext(description="Pick a database"),
    )


@pytest.mark.asyncio
async def test_initiate_creates_pending_session(office, clock, recorder) -> None:
    initiator, a, b = await _staff(office, AgentState.WORKING, AgentState.IDLE, AgentState.WORKING)

    session = await _session(office, initiator, [a, b])

    assert session.status == CollaborationStatus.PENDING
    assert session.votes == []
    assert session.start_time == clock.now
    assert session.end_time is None
    assert (await office.collaborations.get(session.id)) == session
    assert [event.entity_id for event in recorder.of_type(EventType.COLLABORATION_INITIATED)] == [session.id]


@pytest.mark.asyncio
async def test_initiate_rejects_unavailable_participants(office) -> None:
    initiator, resting = await _staff(office, AgentState.IDLE, AgentState.BREAK)

    with pytest.raises(AgentUnavailableError) as excinfo:
        await _session(office, initiator, [resting])

    assert resting.name in str(excinfo.value)


@pytest.mark.asyncio
async def test_availability_check_can_be_disabled(clock) -> None:
    initiator = Agent(name="Lead", role=AgentRole.CTO)
    resting = Agent(name="Resting", role=AgentRole.ENGINEER, state=AgentState.BREAK)
    manager = CollaborationSessionManager(
        InMemoryAgentRegistry([initiator, resting]),
        settings=CollaborationSettings(require_available_participants=False),
        clock=clock,
    )

    session = await manager.initiate(
        CollaborationType.KNOWLEDGE_SHARING,
        initiator.id,
        [resting.id],
        CollaborationContext(description="Share notes"),
    )

    assert session.status == CollaborationStatus.PENDING


@pytest.mark.asyncio
async def test_initiate_validates_participants(office) -> None:
    initiator, a = await _staff(office, AgentState.IDLE, AgentState.IDLE)
    context = CollaborationContext(description="Review")

    with pytest.raises(CoreValidationError):
        await office.collaborations.initiate(CollaborationType.TASK_HELP, initiator.id, [], context)
    with pytest.raises(CoreValidationError):
        await office.collaborations.initiate(CollaborationType.TASK_HELP, initiator.id, [a.id, a.id], context)
    with pytest.raises(AgentNotFoundError):
        await office.collaborations.initiate(CollaborationType.TASK_HELP, initiator.id, ["ghost"], context)
    with pytest.raises(AgentNotFoundError):
        await office.collaborations.initiate(CollaborationType.TASK_HELP, "ghost", [a.id], context)


@pytest.mark.asyncio
async def test_unanimous_approval_activates(office, recorder) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b])

    after_first = await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    assert after_first.status == CollaborationStatus.PENDING

    after_second = await office.collaborations.respond(session.id, b.id, VoteType.APPROVE, "Sounds good")

    assert after_second.status == CollaborationStatus.ACTIVE
    assert after_second.end_time is None
    assert [vote.agent_id for vote in after_second.votes] == [a.id, b.id]
    assert after_second.votes[1].reason == "Sounds good"
    assert len(recorder.of_type(EventType.COLLABORATION_RESPONSE_RECEIVED)) == 2
    assert len(recorder.of_type(EventType.COLLABORATION_STATUS_CHANGED)) == 1


@pytest.mark.asyncio
async def test_half_approval_is_enough(office) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b])

    await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    result = await office.collaborations.respond(session.id, b.id, VoteType.REJECT)

    assert result.status == CollaborationStatus.ACTIVE


@pytest.mark.asyncio
async def test_unanimous_rejection_cancels(office, clock) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b])

    await office.collaborations.respond(session.id, a.id, VoteType.REJECT)
    clock.advance(minutes=3)
    result = await office.collaborations.respond(session.id, b.id, VoteType.REJECT)

    assert result.status == CollaborationStatus.CANCELLED
    assert result.end_time == clock.now


@pytest.mark.asyncio
async def test_repeat_votes_count_in_the_ratio_denominator(office) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b])

    await office.collaborations.respond(session.id, a.id, VoteType.REJECT)
    after_repeat = await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    assert after_repeat.status == CollaborationStatus.PENDING

    result = await office.collaborations.respond(session.id, b.id, VoteType.REJECT)

    # 1 approval over 3 logged votes, although A's latest vote is an approval.
    assert approval_ratio(result.votes) == pytest.approx(1 / 3)
    assert result.status == CollaborationStatus.CANCELLED


@pytest.mark.asyncio
async def test_abstentions_count_against_approval(office) -> None:
    initiator, a, b, c = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b, c])

    await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    await office.collaborations.respond(session.id, b.id, VoteType.ABSTAIN)
    result = await office.collaborations.respond(session.id, c.id, VoteType.ABSTAIN)

    assert result.status == CollaborationStatus.CANCELLED


@pytest.mark.asyncio
async def test_respond_rejects_outsiders_and_closed_sessions(office) -> None:
    initiator, a = await _staff(office, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a])

    with pytest.raises(NotAParticipantError):
        await office.collaborations.respond(session.id, initiator.id, VoteType.APPROVE)
    with pytest.raises(AgentNotFoundError):
        await office.collaborations.respond(session.id, "ghost", VoteType.APPROVE)
    with pytest.raises(SessionNotFoundError):
        await office.collaborations.respond("missing", a.id, VoteType.APPROVE)

    await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    with pytest.raises(InvalidStateError):
        await office.collaborations.respond(session.id, a.id, VoteType.REJECT)


@pytest.mark.asyncio
async def test_complete_requires_active_and_only_once(office, clock) -> None:
    initiator, a = await _staff(office, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a])
    outcome = CollaborationOutcome(decision="postgres", reasoning="Team agreed", action_items=["Provision"])

    with pytest.raises(InvalidStateError):
        await office.collaborations.complete(session.id, outcome)

    await office.collaborations.respond(session.id, a.id, VoteType.APPROVE)
    clock.advance(minutes=30)
    completed = await office.collaborations.complete(session.id, outcome)

    assert completed.status == CollaborationStatus.COMPLETED
    assert completed.end_time == clock.now
    assert completed.outcome.decision == "postgres"
    assert completed.outcome.timestamp == clock.now

    with pytest.raises(InvalidStateError):
        await office.collaborations.complete(session.id, outcome)


@pytest.mark.asyncio
async def test_find_active_lists_sessions_for_initiator_and_participants(office, clock) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    first = await _session(office, initiator, [a])
    clock.advance(minutes=1)
    second = await _session(office, initiator, [a, b])
    pending = await _session(office, initiator, [b])

    await office.collaborations.respond(second.id, a.id, VoteType.APPROVE)
    await office.collaborations.respond(second.id, b.id, VoteType.APPROVE)
    await office.collaborations.respond(first.id, a.id, VoteType.APPROVE)

    for_initiator = await office.collaborations.find_active(initiator.id)
    assert [session.id for session in for_initiator] == [first.id, second.id]
    assert [session.id for session in await office.collaborations.find_active(b.id)] == [second.id]
    assert pending.id not in {session.id for session in for_initiator}

    assert await office.collaborations.find_active(initiator.id) == for_initiator


@pytest.mark.asyncio
async def test_task_help_activation_engages_agents(office) -> None:
    requester, helper = await _staff(office, AgentState.WORKING, AgentState.IDLE)
    session = await _session(office, requester, [helper], type=CollaborationType.TASK_HELP)

    await office.collaborations.respond(session.id, helper.id, VoteType.APPROVE)

    assert (await office.registry.get(requester.id)).state == AgentState.COLLABORATING
    assert (await office.registry.get(helper.id)).state == AgentState.COLLABORATING


@pytest.mark.asyncio
async def test_engagement_failures_do_not_block_activation(office) -> None:
    requester, helper = await _staff(office, AgentState.IDLE, AgentState.WORKING)
    session = await _session(office, requester, [helper], type=CollaborationType.TASK_HELP)

    result = await office.collaborations.respond(session.id, helper.id, VoteType.APPROVE)

    assert result.status == CollaborationStatus.ACTIVE
    assert (await office.registry.get(requester.id)).state == AgentState.IDLE
    assert (await office.registry.get(helper.id)).state == AgentState.WORKING


@pytest.mark.asyncio
async def test_decision_sessions_leave_agent_states_alone(office) -> None:
    requester, helper = await _staff(office, AgentState.WORKING, AgentState.IDLE)
    session = await _session(office, requester, [helper])

    await office.collaborations.respond(session.id, helper.id, VoteType.APPROVE)

    assert (await office.registry.get(requester.id)).state == AgentState.WORKING
    assert (await office.registry.get(helper.id)).state == AgentState.IDLE


@pytest.mark.asyncio
async def test_concurrent_responses_reach_quorum_once(office, recorder) -> None:
    staff = await _staff(office, *([AgentState.IDLE] * 6))
    initiator, participants = staff[0], staff[1:]
    session = await _session(office, initiator, participants)

    await asyncio.gather(
        *(office.collaborations.respond(session.id, agent.id, VoteType.APPROVE) for agent in participants)
    )

    stored = await office.collaborations.get(session.id)
    assert stored.status == CollaborationStatus.ACTIVE
    assert len(stored.votes) == len(participants)
    assert len(recorder.of_type(EventType.COLLABORATION_STATUS_CHANGED)) == 1


@pytest.mark.asyncio
async def test_quorum_waits_for_every_participant(office) -> None:
    initiator, a, b = await _staff(office, AgentState.IDLE, AgentState.IDLE, AgentState.IDLE)
    session = await _session(office, initiator, [a, b])
    session.votes.clear()

    assert evaluate_quorum(session, threshold=0.5) is None
