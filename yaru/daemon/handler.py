"""Request dispatch from protocol methods to the task service."""

import asyncio
import logging
import os
import time
from typing import Any, Awaitable, Callable, Optional

from yaru.core.task_service import TaskFilter, TaskService
from yaru.core.types import TaskError
from yaru.daemon.protocol import (
    ProtocolError,
    Request,
    Response,
    create_error_response,
    create_response,
    decode_params,
)

logger = logging.getLogger(__name__)

RequestHandler = Callable[[Request], Awaitable[Response]]


class TaskRequestHandler:
    """
    Route decoded requests to TaskService methods.

    Service calls are blocking file I/O, so they run in worker threads.
    TaskService serializes them with its own lock.

    Args:
        service: Task domain service
        on_stop: Called after a daemon.stop request has been answered
    """

    def __init__(
        self,
        service: TaskService,
        on_stop: Optional[Callable[[], None]] = None,
    ):
        self.service = service
        self.on_stop = on_stop
        self.start_time = time.time()
        self._routes = {
            "task.create": self._task_create,
            "task.list": self._task_list,
            "task.get": self._task_get,
            "task.update": self._task_update,
            "task.updateStatus": self._task_update_status,
            "task.delete": self._task_delete,
            "task.search": self._task_search,
            "subtask.create": self._subtask_create,
            "subtask.list": self._subtask_list,
            "subtask.progress": self._subtask_progress,
            "daemon.status": self._daemon_status,
            "daemon.stop": self._daemon_stop,
        }

    async def __call__(self, request: Request) -> Response:
        try:
            params = decode_params(request.method, request.params)
        except ProtocolError as e:
            return create_error_response(request.id, e.code, str(e))

        route = self._routes[request.method]
        try:
            data = await route(params)
        except TaskError as e:
            logger.info(f"{request.method} failed: {e.code} {e.message}")
            return create_error_response(request.id, e.code, e.message)
        return create_response(request.id, data)

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _task_create(self, params) -> Any:
        task = await self._call(
            self.service.create,
            params.title,
            description=params.description,
            priority=params.priority,
        )
        return task.to_dict()

    async def _task_list(self, params) -> Any:
        task_filter = TaskFilter(
            status=params.status,
            priority=params.priority,
            sort_by=params.sortBy,
            sort_order=params.sortOrder or "desc",
        )
        tasks = await self._call(self.service.list_tasks, task_filter)
        return [t.to_dict() for t in tasks]

    async def _task_get(self, params) -> Any:
        task = await self._call(self.service.get, params.id)
        return task.to_dict()

    async def _task_update(self, params) -> Any:
        task = await self._call(
            self.service.update,
            params.id,
            title=params.title,
            description=params.description,
            priority=params.priority,
        )
        return task.to_dict()

    async def _task_update_status(self, params) -> Any:
        result = await self._call(self.service.update_status, params.id, params.status)
        return result.to_dict()

    async def _task_delete(self, params) -> Any:
        await self._call(self.service.delete, params.id)
        return {"success": True}

    async def _task_search(self, params) -> Any:
        tasks = await self._call(self.service.search, params.query)
        return [t.to_dict() for t in tasks]

    async def _subtask_create(self, params) -> Any:
        task = await self._call(
            self.service.create_subtask,
            params.parentId,
            params.title,
            description=params.description,
            priority=params.priority,
        )
        return task.to_dict()

    async def _subtask_list(self, params) -> Any:
        tasks = await self._call(self.service.list_subtasks, params.parentId)
        return [t.to_dict() for t in tasks]

    async def _subtask_progress(self, params) -> Any:
        progress = await self._call(self.service.get_progress, params.parentId)
        return progress.to_dict()

    async def _daemon_status(self, params) -> Any:
        return {
            "status": "running",
            "pid": os.getpid(),
            "uptimeSeconds": round(time.time() - self.start_time, 3),
        }

    async def _daemon_stop(self, params) -> Any:
        logger.info("Shutdown requested via socket")
        if self.on_stop is not None:
            # Deferred so the response is written before shutdown begins
            asyncio.get_running_loop().call_soon(self.on_stop)
        return {"status": "stopping"}
