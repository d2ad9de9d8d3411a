from __future__ import annotations

from ..core.logging import get_logger
from ..orchestration.enums import AgentRole, AgentState
from ..schemas.agents import Agent, AgentMetrics, Location
from .registry import AgentRegistry

logger = get_logger(name=__name__)


def demo_roster() -> list[Agent]:
    return [
        Agent(
            name="Chief Executive",
            role=AgentRole.CEO,
            state=AgentState.IDLE,
            location=Location(room="Meeting Room", x=100, y=100),
            metrics=AgentMetrics(
                productivity=0.88,
                collaboration=0.9,
                decision_quality=0.93,
                task_completion_rate=0.86,
                break_time_efficiency=0.87,
            ),
        ),
        Agent(
            name="Tech Lead",
            role=AgentRole.CTO,
            state=AgentState.IDLE,
            location=Location(room="Development Room", x=100, y=100),
            metrics=AgentMetrics(
                productivity=0.9,
                collaboration=0.85,
                decision_quality=0.95,
                task_completion_rate=0.88,
                break_time_efficiency=0.92,
            ),
        ),
        Agent(
            name="Senior Engineer",
            role=AgentRole.ENGINEER,
            state=AgentState.WORKING,
            location=Location(room="Development Room", x=200, y=100),
            metrics=AgentMetrics(
                productivity=0.85,
                collaboration=0.8,
                decision_quality=0.9,
                task_completion_rate=0.85,
                break_time_efficiency=0.88,
            ),
        ),
        Agent(
            name="Marketing Manager",
            role=AgentRole.MARKETER,
            state=AgentState.IDLE,
            location=Location(room="Marketing Room", x=100, y=100),
            metrics=AgentMetrics(
                productivity=0.87,
                collaboration=0.92,
                decision_quality=0.88,
                task_completion_rate=0.9,
                break_time_efficiency=0.85,
            ),
        ),
        Agent(
            name="Sales Representative",
            role=AgentRole.SALES,
            state=AgentState.COLLABORATING,
            location=Location(room="Sales Room", x=100, y=100),
            metrics=AgentMetrics(
                productivity=0.82,
                collaboration=0.95,
                decision_quality=0.85,
                task_completion_rate=0.87,
                break_time_efficiency=0.9,
            ),
        ),
    ]


async def seed_demo_roster(registry: AgentRegistry) -> list[Agent]:
    """Create the demo roster unless the registry already holds agents."""
    if await registry.list():
        logger.info("demo_roster_skipped", reason="registry_not_empty")
        return []
    created = [await registry.create(agent) for agent in demo_roster()]
    logger.info("demo_roster_seeded", agents=[agent.name for agent in created])
    return created
