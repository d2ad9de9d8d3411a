from __future__ import annotations

import time
from dataclasses import dataclass

from ..core.logging import get_logger
from ..core.metrics import observe_sweep_run
from ..orchestration.voting import VotingSessionManager

logger = get_logger(name=__name__)


@dataclass(slots=True)
class SweepResult:
    closed: list[str]
    duration_seconds: float


class VotingDeadlineSweeper:
    """Closes ballots whose deadline passed while nobody touched them."""

    def __init__(self, votings: VotingSessionManager) -> None:
        self._votings = votings

    async def run_once(self) -> SweepResult:
        start = time.perf_counter()
        closed = await self._votings.sweep_expired()
        duration = time.perf_counter() - start
        observe_sweep_run(status="closed" if closed else "empty", duration=duration)
        if closed:
            logger.info("voting_sweep_completed", closed=len(closed), duration_seconds=round(duration, 4))
        return SweepResult(closed=[voting.id for voting in closed], duration_seconds=duration)
