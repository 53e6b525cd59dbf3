from __future__ import annotations

import asyncio
import logging
from typing import Optional

from common.schemas import Project

logger = logging.getLogger(__name__)


class ProjectStore:
    """Key-value storage for projects, scoped by owner id and project id."""

    async def get(self, owner_id: str, project_id: str) -> Optional[Project]:
        raise NotImplementedError

    async def put(self, project: Project) -> Project:
        raise NotImplementedError

    async def list(self, owner_id: str) -> list[Project]:
        raise NotImplementedError

    async def delete(self, owner_id: str, project_id: str) -> None:
        raise NotImplementedError

    async def has_room(self, owner_id: str) -> bool:
        raise NotImplementedError


class InMemoryProjectStore(ProjectStore):
    """Process-local store for offline use and tests. Hands out copies."""

    def __init__(self, max_projects_per_owner: int = 50) -> None:
        self._max = max_projects_per_owner
        self._buckets: dict[str, dict[str, Project]] = {}
        self._lock = asyncio.Lock()

    async def get(self, owner_id: str, project_id: str) -> Optional[Project]:
        async with self._lock:
            project = self._buckets.get(owner_id, {}).get(project_id)
            return project.model_copy(deep=True) if project else None

    async def put(self, project: Project) -> Project:
        async with self._lock:
            bucket = self._buckets.setdefault(project.owner_id, {})
            if project.id not in bucket and len(bucket) >= self._max:
                raise RuntimeError(f"Max projects ({self._max}) reached for owner {project.owner_id}")
            bucket[project.id] = project.model_copy(deep=True)
            logger.info("Project stored: %s (%d for owner %s)", project.id, len(bucket), project.owner_id)
            return project

    async def list(self, owner_id: str) -> list[Project]:
        async with self._lock:
            projects = self._buckets.get(owner_id, {}).values()
            return sorted((p.model_copy(deep=True) for p in projects), key=lambda p: p.created_at)

    async def has_room(self, owner_id: str) -> bool:
        async with self._lock:
            return len(self._buckets.get(owner_id, {})) < self._max

    async def delete(self, owner_id: str, project_id: str) -> None:
        async with self._lock:
            self._buckets.get(owner_id, {}).pop(project_id, None)
            logger.info("Project removed: %s", project_id)
