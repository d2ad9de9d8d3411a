from __future__ import annotations

import asyncio
from typing import Callable, Iterable

from ..orchestration.exceptions import AgentNotFoundError, TaskNotFoundError
from ..schemas.agents import Agent, TaskReference

AgentPredicate = Callable[[Agent], bool]


class AgentRegistry:
    """Owner of durable agent records.

    The behaviour core reads agents through ``get``/``find`` and persists every
    mutation through ``save``; returned records are detached copies.
    """

    async def get(self, agent_id: str) -> Agent:
        raise NotImplementedError

    async def find(self, predicate: AgentPredicate) -> list[Agent]:
        raise NotImplementedError

    async def save(self, agent: Agent) -> Agent:
        raise NotImplementedError

    async def create(self, agent: Agent) -> Agent:
        return await self.save(agent)

    async def list(self) -> list[Agent]:
        return await self.find(lambda _agent: True)


class InMemoryAgentRegistry(AgentRegistry):
    def __init__(self, agents: Iterable[Agent] | None = None) -> None:
        self._agents: dict[str, Agent] = {}
        self._lock = asyncio.Lock()
        for agent in agents or ():
            self._agents[agent.id] = agent.model_copy(deep=True)

    async def get(self, agent_id: str) -> Agent:
        async with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise AgentNotFoundError(agent_id)
            return agent.model_copy(deep=True)

    async def find(self, predicate: AgentPredicate) -> list[Agent]:
        async with self._lock:
            snapshot = [agent.model_copy(deep=True) for agent in self._agents.values()]
        return [agent for agent in snapshot if predicate(agent)]

    async def save(self, agent: Agent) -> Agent:
        stored = agent.model_copy(deep=True)
        async with self._lock:
            self._agents[stored.id] = stored
        return stored.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._agents)


class TaskDirectory:
    async def get(self, task_id: str) -> TaskReference:
        raise NotImplementedError


class InMemoryTaskDirectory(TaskDirectory):
    def __init__(self, tasks: Iterable[TaskReference] | None = None) -> None:
        self._tasks: dict[str, TaskReference] = {task.id: task for task in tasks or ()}

    def add(self, task: TaskReference) -> None:
        self._tasks[task.id] = task

    async def get(self, task_id: str) -> TaskReference:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task.model_copy()
