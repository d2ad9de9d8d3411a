"""Voting sessions attached to collaborations.

A ballot offers a closed list of options and accepts confidence-weighted votes
from the parent collaboration's participants. It closes exactly once, either
when every participant has voted or when its deadline passes. The deadline is
enforced lazily: every read or write first closes an expired ballot, and
``sweep_expired`` lets a background job do the same without traffic.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from ..core.clock import Clock, utc_now
from ..core.config import VotingSettings
from ..core.locks import KeyedLock
from ..core.logging import get_logger
from ..core.metrics import observe_voting_closed, record_vote
from ..schemas.collaboration import (
    BallotVote,
    CollaborationOutcome,
    Dissent,
    VotingOption,
    VotingResult,
    VotingSession,
)
from ..services.notifications import CoreEvent, EventBus
from .collaboration import CollaborationSessionManager
from .enums import EventType, VotingStatus
from .exceptions import (
    CoreValidationError,
    InvalidOptionError,
    InvalidStateError,
    NotAParticipantError,
    VotingClosedError,
    VotingSessionNotFoundError,
)

logger = get_logger(name=__name__)


class VotingStore:
    async def add(self, voting: VotingSession) -> VotingSession:
        raise NotImplementedError

    async def get(self, voting_id: str) -> VotingSession | None:
        raise NotImplementedError

    async def replace(self, voting: VotingSession) -> None:
        raise NotImplementedError

    async def list(self) -> list[VotingSession]:
        raise NotImplementedError


class InMemoryVotingStore(VotingStore):
    def __init__(self) -> None:
        self._sessions: dict[str, VotingSession] = {}
        self._lock = asyncio.Lock()

    async def add(self, voting: VotingSession) -> VotingSession:
        async with self._lock:
            self._sessions[voting.id] = voting.model_copy(deep=True)
        return voting.model_copy(deep=True)

    async def get(self, voting_id: str) -> VotingSession | None:
        async with self._lock:
            voting = self._sessions.get(voting_id)
            return None if voting is None else voting.model_copy(deep=True)

    async def replace(self, voting: VotingSession) -> None:
        async with self._lock:
            if voting.id not in self._sessions:
                raise VotingSessionNotFoundError(voting.id)
            self._sessions[voting.id] = voting.model_copy(deep=True)

    async def list(self) -> list[VotingSession]:
        async with self._lock:
            return [voting.model_copy(deep=True) for voting in self._sessions.values()]


def collect_dissent(votes: Iterable[BallotVote], selected_option_id: str, *, threshold: float) -> list[Dissent]:
    """High-confidence votes for any option other than the winner."""
    return [
        Dissent(agent_id=vote.agent_id, reason=vote.reasoning)
        for vote in votes
        if vote.option_id != selected_option_id and vote.confidence > threshold
    ]


def tally_votes(
    options: Sequence[VotingOption],
    votes: Sequence[BallotVote],
    *,
    participant_count: int,
    dissent_threshold: float,
) -> VotingResult:
    """Sum confidence per option; the first declared option wins ties."""
    if not options:
        raise CoreValidationError("Cannot tally a ballot without options")
    weighted = {option.id: 0.0 for option in options}
    for vote in votes:
        if vote.option_id in weighted:
            weighted[vote.option_id] += vote.confidence

    selected = options[0].id
    for option in options[1:]:
        if weighted[option.id] > weighted[selected]:
            selected = option.id

    consensus = weighted[selected] / participant_count if participant_count > 0 else 0.0
    return VotingResult(
        selected_option_id=selected,
        consensus_level=max(0.0, min(1.0, consensus)),
        dissent=collect_dissent(votes, selected, threshold=dissent_threshold),
    )


def build_outcome(voting: VotingSession) -> CollaborationOutcome:
    """Collaboration outcome for a closed ballot."""
    result = voting.result
    if result is None:
        raise InvalidStateError(f"Voting session {voting.id} has no result")
    option = voting.option(result.selected_option_id)
    action_items = [f"Implement decision: {option.description if option else result.selected_option_id}"]
    if result.dissent:
        action_items.append("Address concerns raised by dissenting agents")
    return CollaborationOutcome(
        decision=result.selected_option_id,
        reasoning=f"Selected by confidence-weighted vote with {round(result.consensus_level * 100)}% consensus",
        action_items=action_items,
        timestamp=voting.closed_at,
    )


class VotingSessionManager:
    def __init__(
        self,
        collaborations: CollaborationSessionManager,
        *,
        store: VotingStore | None = None,
        settings: VotingSettings | None = None,
        events: EventBus | None = None,
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._collaborations = collaborations
        self._store = store or InMemoryVotingStore()
        self._settings = settings or VotingSettings()
        self._events = events
        self._locks = locks or KeyedLock()
        self._clock: Clock = clock or utc_now

    async def open(
        self,
        collaboration_id: str,
        topic: str,
        description: str,
        options: Sequence[VotingOption],
        duration_minutes: float | None = None,
    ) -> VotingSession:
        collaboration = await self._collaborations.get(collaboration_id)
        if not options:
            raise CoreValidationError("A voting session needs at least one option")
        option_ids = [option.id for option in options]
        if len(set(option_ids)) != len(option_ids):
            raise CoreValidationError("Option ids must be unique")
        minutes = self._settings.default_duration_minutes if duration_minutes is None else duration_minutes
        if minutes <= 0 or minutes > self._settings.max_duration_minutes:
            raise CoreValidationError(
                f"Voting duration must be within (0, {self._settings.max_duration_minutes}] minutes"
            )

        now = self._clock()
        voting = VotingSession(
            collaboration_id=collaboration.id,
            topic=topic,
            description=description,
            options=tuple(option.model_copy(deep=True) for option in options),
            votes=[],
            status=VotingStatus.OPEN,
            deadline=now + timedelta(minutes=minutes),
            created_at=now,
        )
        stored = await self._store.add(voting)
        logger.info(
            "voting_session_opened",
            voting_id=stored.id,
            collaboration_id=collaboration.id,
            options=len(stored.options),
            deadline=stored.deadline.isoformat(),
        )
        return stored

    async def get(self, voting_id: str) -> VotingSession:
        pending: list[CoreEvent] = []
        async with self._locks.hold(voting_id):
            voting = await self._load(voting_id)
            if await self._expire_if_due(voting, self._clock()):
                pending.append(CoreEvent(EventType.VOTING_CLOSED, voting))
        await self._flush(pending)
        return voting

    async def cast_vote(
        self,
        voting_id: str,
        agent_id: str,
        option_id: str,
        confidence: float,
        reasoning: str = "",
    ) -> VotingSession:
        pending: list[CoreEvent] = []
        rejection: VotingClosedError | None = None
        async with self._locks.hold(voting_id):
            voting = await self._load(voting_id)
            now = self._clock()
            if await self._expire_if_due(voting, now):
                pending.append(CoreEvent(EventType.VOTING_CLOSED, voting))

            if voting.status is VotingStatus.CLOSED:
                rejection = VotingClosedError(voting_id)
            else:
                collaboration = await self._collaborations.get(voting.collaboration_id)
                if agent_id not in collaboration.participant_ids:
                    record_vote(outcome="rejected")
                    raise NotAParticipantError(agent_id, voting_id)
                if voting.option(option_id) is None:
                    record_vote(outcome="rejected")
                    raise InvalidOptionError(option_id, voting_id)
                if not 0.0 <= confidence <= 1.0:
                    record_vote(outcome="rejected")
                    raise CoreValidationError("Vote confidence must be within [0, 1]")

                voting.votes.append(
                    BallotVote(
                        agent_id=agent_id,
                        option_id=option_id,
                        confidence=confidence,
                        reasoning=reasoning,
                        timestamp=now,
                    )
                )
                pending.append(CoreEvent(EventType.VOTE_CAST, voting.model_copy(deep=True), actor=agent_id))

                participants = set(collaboration.participant_ids)
                voters = {vote.agent_id for vote in voting.votes}
                # An expired ballot was already closed above, so only quorum can close it here.
                if voters >= participants:
                    await self._finalize(voting, participant_count=len(participants), trigger="quorum", now=now)
                    pending.append(CoreEvent(EventType.VOTING_CLOSED, voting))
                await self._store.replace(voting)

        if rejection is not None:
            record_vote(outcome="closed")
            await self._flush(pending)
            raise rejection

        record_vote(outcome="accepted")
        await self._flush(pending)
        return voting

    async def list_for_collaboration(self, collaboration_id: str) -> list[VotingSession]:
        candidates = [voting for voting in await self._store.list() if voting.collaboration_id == collaboration_id]
        refreshed = [await self.get(voting.id) for voting in candidates]
        return sorted(refreshed, key=lambda voting: (voting.created_at, voting.id))

    async def sweep_expired(self) -> list[VotingSession]:
        """Close every open ballot whose deadline has passed."""
        now = self._clock()
        closed: list[VotingSession] = []
        for voting in await self._store.list():
            if voting.status is VotingStatus.OPEN and now >= voting.deadline:
                refreshed = await self.get(voting.id)
                if refreshed.status is VotingStatus.CLOSED:
                    closed.append(refreshed)
        return closed

    async def summarize_outcome(self, voting_id: str) -> CollaborationOutcome:
        voting = await self.get(voting_id)
        if voting.status is not VotingStatus.CLOSED or voting.result is None:
            raise InvalidStateError(f"Voting session {voting_id} is still open")
        return build_outcome(voting)

    async def _load(self, voting_id: str) -> VotingSession:
        voting = await self._store.get(voting_id)
        if voting is None:
            raise VotingSessionNotFoundError(voting_id)
        return voting

    async def _expire_if_due(self, voting: VotingSession, now: datetime) -> bool:
        if voting.status is not VotingStatus.OPEN or now < voting.deadline:
            return False
        collaboration = await self._collaborations.get(voting.collaboration_id)
        await self._finalize(
            voting, participant_count=len(set(collaboration.participant_ids)), trigger="deadline", now=now
        )
        await self._store.replace(voting)
        return True

    async def _finalize(self, voting: VotingSession, *, participant_count: int, trigger: str, now: datetime) -> None:
        result = tally_votes(
            voting.options,
            voting.votes,
            participant_count=participant_count,
            dissent_threshold=self._settings.dissent_confidence_threshold,
        )
        voting.status = VotingStatus.CLOSED
        voting.result = result
        voting.closed_at = now
        observe_voting_closed(trigger=trigger, consensus=result.consensus_level)
        logger.info(
            "voting_session_closed",
            voting_id=voting.id,
            trigger=trigger,
            selected_option_id=result.selected_option_id,
            consensus_level=round(result.consensus_level, 4),
            dissent=len(result.dissent),
            votes=len(voting.votes),
        )
        await self._collaborations.attach_outcome(voting.collaboration_id, build_outcome(voting))

    async def _flush(self, events: list[CoreEvent]) -> None:
        if self._events is None:
            return
        for event in events:
            await self._events.publish(event)
