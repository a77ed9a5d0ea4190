"""
Task Service Client

Async REST client for the proof task service: task listing and status,
task submission and the chain metadata endpoint.
"""

import asyncio
import logging
from typing import Any, Callable, List

import aiohttp

from .base import ChainMetadata, Task
from .errors import TaskServiceError

logger = logging.getLogger(__name__)


class TaskServiceClient:
    """Client for /tasks and /metadata"""

    def __init__(self, base_url: str, session_provider: Callable[[], aiohttp.ClientSession]):
        self.base_url = base_url.rstrip('/')
        self._session_provider = session_provider

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        session = self._session_provider()
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    raise TaskServiceError(f"HTTP error! status: {response.status}", url=url, status=response.status)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise TaskServiceError(f"Invalid JSON from {url}: {e}", url=url, status=response.status) from e
        except aiohttp.ClientError as e:
            logger.error(f"Task service request {method} {url} failed: {e}")
            raise TaskServiceError(f"Failed to reach task service: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise TaskServiceError("Task service request timed out", url=url) from e

    def _parse_task(self, data: Any, path: str) -> Task:
        # Proof payloads arrive as int arrays or hex; either can be malformed
        try:
            return Task.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise TaskServiceError(f"Malformed task payload: {e}", url=f"{self.base_url}{path}") from e

    async def list_tasks(self) -> List[Task]:
        """All tasks, newest first."""
        data = await self._request('GET', '/tasks')
        if not isinstance(data, list):
            raise TaskServiceError(f"Expected a task list, got {type(data).__name__}", url=f"{self.base_url}/tasks")
        tasks = [self._parse_task(item, '/tasks') for item in data]
        tasks.sort(key=lambda t: t.ts, reverse=True)
        logger.debug(f"Loaded {len(tasks)} tasks")
        return tasks

    async def get_task(self, task_id: str) -> Task:
        data = await self._request('GET', f'/tasks/{task_id}')
        return self._parse_task(data, f'/tasks/{task_id}')

    async def submit_task(self, query_id: str, ts: int) -> str:
        """Create a task and return its id."""
        task_id = await self._request('POST', '/tasks', json={'query_id': query_id, 'ts': int(ts)})
        logger.info(f"Submitted task {task_id} for query {query_id}")
        return str(task_id)

    async def get_metadata(self) -> ChainMetadata:
        data = await self._request('GET', '/metadata')
        try:
            return ChainMetadata.from_dict(data)
        except (KeyError, TypeError) as e:
            raise TaskServiceError(f"Incomplete metadata: missing {e}", url=f"{self.base_url}/metadata") from e
