"""
POSEMATCH Worker Thread Pool

ThreadPoolExecutor for blocking camera reads and pose inference
without blocking the async event loop.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import threading
import uuid

from core.config import settings

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Task:
    """Represents a processing task."""
    task_id: str
    func: Callable
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    error: str = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime = None


class WorkerPool:
    """
    Thread pool for blocking operations.

    Features:
    - Fixed-size thread pool
    - Async-compatible execution
    - Completion / failure statistics
    """

    def __init__(self, max_workers: int = None, name: str = "worker_pool"):
        self.max_workers = max_workers or settings.THREAD_POOL_SIZE
        self.name = name

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"{name}_"
        )

        self._lock = threading.Lock()
        self._running = 0
        self._completed_count = 0
        self._failed_count = 0

        logger.info(f"🧵 WorkerPool '{name}' initialized (workers: {self.max_workers})")

    async def submit_async(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run func on the pool and await its result.

        Exceptions raised by func propagate to the awaiting coroutine.
        """
        task = Task(task_id=uuid.uuid4().hex[:8], func=func, args=args, kwargs=kwargs)
        future = self._executor.submit(self._run_task, task)
        return await asyncio.wrap_future(future)

    def _run_task(self, task: Task) -> Any:
        """Execute a task in the thread pool."""
        task.status = TaskStatus.RUNNING
        with self._lock:
            self._running += 1

        try:
            result = task.func(*task.args, **task.kwargs)
            task.status = TaskStatus.COMPLETED
            with self._lock:
                self._completed_count += 1
            return result
        except Exception as e:
            task.status = TaskStatus.FAILED
            task.error = str(e)
            with self._lock:
                self._failed_count += 1
            logger.error(f"Task {task.task_id} ({getattr(task.func, '__name__', 'task')}) failed: {e}")
            raise
        finally:
            task.completed_at = datetime.now(timezone.utc)
            with self._lock:
                self._running -= 1

    def shutdown(self, wait: bool = True):
        """Shutdown the thread pool."""
        logger.info(f"Shutting down WorkerPool '{self.name}'...")
        self._executor.shutdown(wait=wait)
        logger.info(f"WorkerPool '{self.name}' shutdown complete")

    def get_stats(self) -> dict:
        """Get pool statistics."""
        with self._lock:
            return {
                "name": self.name,
                "max_workers": self.max_workers,
                "running_tasks": self._running,
                "completed_tasks": self._completed_count,
                "failed_tasks": self._failed_count,
            }


# ============================================
# Global Worker Pools
# ============================================

# Camera capture pool
video_worker_pool = WorkerPool(name="video_processing", max_workers=1)

# Pose inference pool (live frames and the one-shot reference image)
ml_worker_pool = WorkerPool(name="ml_inference")


async def process_video_frame(frame_reader: Callable, *args) -> Any:
    """
    Read a video frame using the video worker pool.

    Usage:
        ok, frame = await process_video_frame(cap.read)
    """
    return await video_worker_pool.submit_async(frame_reader, *args)


async def run_ml_inference(model_fn: Callable, *args, **kwargs) -> Any:
    """
    Run ML inference using the ML worker pool.

    Usage:
        poses = await run_ml_inference(estimator.estimate, frame, options)
    """
    return await ml_worker_pool.submit_async(model_fn, *args, **kwargs)
