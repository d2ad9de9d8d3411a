from __future__ import annotations

import asyncio
from typing import Iterable, Mapping

from ..core.clock import Clock, utc_now
from ..core.config import CollaborationSettings
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..core.metrics import record_collaboration_response, record_collaboration_status
from ..schemas.collaboration import (
    CollaborationContext,
    CollaborationOutcome,
    CollaborationSession,
    CollaborationVote,
)
from ..services.notifications import CoreEvent, EventBus
from ..services.registry import AgentRegistry
from .enums import AgentAction, CollaborationStatus, CollaborationType, EventType, VoteType
from .exceptions import (
    AgentUnavailableError,
    CoreValidationError,
    InvalidStateError,
    NotAParticipantError,
    SessionNotFoundError,
    TransitionError,
)
from .state_machine import AgentStateMachine

logger = get_logger(name=__name__)


class CollaborationStore:
    async def add(self, session: CollaborationSession) -> CollaborationSession:
        raise NotImplementedError

    async def get(self, session_id: str) -> CollaborationSession | None:
        raise NotImplementedError

    async def replace(self, session: CollaborationSession) -> None:
        raise NotImplementedError

    async def list(self) -> list[CollaborationSession]:
        raise NotImplementedError


class InMemoryCollaborationStore(CollaborationStore):
    def __init__(self) -> None:
        self._sessions: dict[str, CollaborationSession] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: CollaborationSession) -> CollaborationSession:
        async with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
        return session.model_copy(deep=True)

    async def get(self, session_id: str) -> CollaborationSession | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            return None if session is None else session.model_copy(deep=True)

    async def replace(self, session: CollaborationSession) -> None:
        async with self._lock:
            if session.id not in self._sessions:
                raise SessionNotFoundError(session.id)
            self._sessions[session.id] = session.model_copy(deep=True)

    async def list(self) -> list[CollaborationSession]:
        async with self._lock:
            return [session.model_copy(deep=True) for session in self._sessions.values()]


def approval_ratio(votes: Iterable[CollaborationVote]) -> float:
    """Share of APPROVE votes over the raw vote log, duplicates included."""
    log = list(votes)
    if not log:
        return 0.0
    approvals = sum(1 for vote in log if vote.vote is VoteType.APPROVE)
    return approvals / len(log)


def evaluate_quorum(session: CollaborationSession, *, threshold: float) -> CollaborationStatus | None:
    """Return the post-quorum status, or ``None`` while participants are still missing."""
    if len(session.distinct_voters()) != len(set(session.participant_ids)):
        return None
    if approval_ratio(session.votes) >= threshold:
        return CollaborationStatus.ACTIVE
    return CollaborationStatus.CANCELLED


class CollaborationSessionManager:
    def __init__(
        self,
        registry: AgentRegistry,
        *,
        store: CollaborationStore | None = None,
        state_machine: AgentStateMachine | None = None,
        settings: CollaborationSettings | None = None,
        events: EventBus | None = None,
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._store = store or InMemoryCollaborationStore()
        self._state_machine = state_machine
        self._settings = settings or CollaborationSettings()
        self._events = events
        self._locks = locks or KeyedLock()
        self._clock: Clock = clock or utc_now

    async def initiate(
        self,
        type: CollaborationType,
        initiator_id: str,
        participant_ids: Iterable[str],
        context: CollaborationContext,
        *,
        metadata: Mapping[str, object] | None = None,
    ) -> CollaborationSession:
        participants = list(participant_ids)
        if not participants:
            raise CoreValidationError("A collaboration needs at least one participant")
        if len(set(participants)) != len(participants):
            raise CoreValidationError("Participant ids must be unique")

        await self._registry.get(initiator_id)
        agents = [await self._registry.get(agent_id) for agent_id in participants]

        if self._settings.require_available_participants:
            available = set(self._settings.available_states)
            unavailable = [agent.name for agent in agents if agent.state not in available]
            if unavailable:
                raise AgentUnavailableError(unavailable)

        session = CollaborationSession(
            type=type,
            initiator_id=initiator_id,
            participant_ids=participants,
            status=CollaborationStatus.PENDING,
            context=context,
            votes=[],
            start_time=self._clock(),
            metadata=dict(metadata or {}),
        )
        stored = await self._store.add(session)
        record_collaboration_status(status=stored.status.value)
        logger.info(
            "collaboration_initiated",
            session_id=stored.id,
            collaboration_type=stored.type.value,
            initiator_id=initiator_id,
            participants=len(participants),
        )
        await self._publish(CoreEvent(EventType.COLLABORATION_INITIATED, stored, actor=initiator_id))
        return stored

    async def get(self, session_id: str) -> CollaborationSession:
        session = await self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def respond(
        self,
        session_id: str,
        agent_id: str,
        vote: VoteType,
        reasoning: str | None = None,
    ) -> CollaborationSession:
        async with self._locks.hold(session_id):
            session = await self.get(session_id)
            await self._registry.get(agent_id)
            if agent_id not in session.participant_ids:
                raise NotAParticipantError(agent_id, session_id)
            if session.status is not CollaborationStatus.PENDING:
                raise InvalidStateError(
                    f"Collaboration session {session_id} is {session.status.value}; responses are closed"
                )

            now = self._clock()
            session.votes.append(CollaborationVote(agent_id=agent_id, vote=vote, reason=reasoning or "", timestamp=now))
            previous = session.status
            outcome = evaluate_quorum(session, threshold=self._settings.approval_threshold)
            if outcome is not None:
                session.status = outcome
                if outcome is CollaborationStatus.CANCELLED:
                    session.end_time = now
            await self._store.replace(session)

        record_collaboration_response(vote=vote.value)
        await self._publish(CoreEvent(EventType.COLLABORATION_RESPONSE_RECEIVED, session, actor=agent_id))
        if session.status is not previous:
            record_collaboration_status(status=session.status.value)
            logger.info(
                "collaboration_quorum_reached",
                session_id=session_id,
                status=session.status.value,
                approval_ratio=round(approval_ratio(session.votes), 4),
                votes=len(session.votes),
            )
            await self._publish(CoreEvent(EventType.COLLABORATION_STATUS_CHANGED, session, actor=agent_id))
            if session.status is CollaborationStatus.ACTIVE:
                await self._engage_agents(session)
        return session

    async def complete(self, session_id: str, outcome: CollaborationOutcome) -> CollaborationSession:
        async with self._locks.hold(session_id):
            session = await self.get(session_id)
            if session.status is not CollaborationStatus.ACTIVE:
                raise InvalidStateError("Can only complete active collaboration sessions")
            now = self._clock()
            session.status = CollaborationStatus.COMPLETED
            session.end_time = now
            session.outcome = outcome if outcome.timestamp is not None else outcome.model_copy(update={"timestamp": now})
            await self._store.replace(session)

        record_collaboration_status(status=session.status.value)
        logger.info("collaboration_completed", session_id=session_id, decision=session.outcome.decision)
        await self._publish(CoreEvent(EventType.COLLABORATION_STATUS_CHANGED, session))
        return session

    async def attach_outcome(self, session_id: str, outcome: CollaborationOutcome) -> CollaborationSession:
        """Record a ballot outcome on the session without changing its status."""
        async with self._locks.hold(session_id):
            session = await self.get(session_id)
            if session.status is CollaborationStatus.COMPLETED:
                logger.info("collaboration_outcome_kept", session_id=session_id, decision=outcome.decision)
                return session
            session.outcome = outcome
            await self._store.replace(session)
        logger.info("collaboration_outcome_attached", session_id=session_id, decision=outcome.decision)
        return session

    async def find_active(self, agent_id: str) -> list[CollaborationSession]:
        sessions = await self._store.list()
        active = [
            session
            for session in sessions
            if session.status is CollaborationStatus.ACTIVE and session.involves(agent_id)
        ]
        return sorted(active, key=lambda session: (session.start_time, session.id))

    async def _engage_agents(self, session: CollaborationSession) -> None:
        if self._state_machine is None or not self._settings.engage_agents_on_activation:
            return
        if session.type is not CollaborationType.TASK_HELP:
            return
        plan = [(session.initiator_id, AgentAction.REQUEST_HELP)]
        plan.extend((participant, AgentAction.PROVIDE_HELP) for participant in session.participant_ids)
        for agent_id, action in plan:
            try:
                await self._state_machine.apply_transition(agent_id, action)
            except TransitionError as exc:
                logger.info(
                    "collaboration_engagement_skipped",
                    session_id=session.id,
                    agent_id=agent_id,
                    action=action.value,
                    error=str(exc),
                )

    async def _publish(self, event: CoreEvent) -> None:
        if self._events is not None:
            await self._events.publish(event)
