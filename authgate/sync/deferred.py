"""
Deferred ("after responding") task execution.

Request handlers call :meth:`DeferredTasks.defer` while a response is being
produced. Inside a :meth:`DeferredTasks.collect` scope the jobs are held
back until the caller submits the batch, which it does once the response
has been written. A worker task then runs queued jobs in priority order
(lowest number first).

Jobs run at most once. They are never retried and never cancelled once
started; a job that raises is logged and dropped.
"""

import asyncio
import inspect
import itertools
import logging
import math
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple


logger = logging.getLogger(__name__)


DEFAULT_PRIORITY = 10

_current_batch: ContextVar[Optional[List["DeferredJob"]]] = ContextVar("authgate_deferred_batch", default=None)


@dataclass(order=True)
class DeferredJob:
    """A queued call; ordered by priority, then submission order"""
    priority: float
    sequence: int
    func: Optional[Callable[..., Any]] = field(default=None, compare=False)
    args: Tuple[Any, ...] = field(default=(), compare=False)
    kwargs: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


class DeferredTasks:
    """Queue of jobs that run after the triggering response is sent"""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._running = False
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def pending(self) -> int:
        """Number of jobs waiting in the queue."""
        return self._queue.qsize()

    def defer(self, func: Callable[..., Any], *args: Any, priority: float = DEFAULT_PRIORITY, **kwargs: Any) -> DeferredJob:
        """Schedule ``func(*args, **kwargs)``; coroutine functions are awaited."""
        job = DeferredJob(priority, next(self._sequence), func, args, kwargs)
        batch = _current_batch.get()
        if batch is not None:
            batch.append(job)
        else:
            self._queue.put_nowait(job)
        return job

    @contextmanager
    def collect(self) -> Iterator[List[DeferredJob]]:
        """Hold jobs deferred in this context until :meth:`submit` is called."""
        batch: List[DeferredJob] = []
        token = _current_batch.set(batch)
        try:
            yield batch
        finally:
            _current_batch.reset(token)

    def submit(self, batch: List[DeferredJob]) -> None:
        """Queue a finished request's jobs."""
        for job in batch:
            self._queue.put_nowait(job)
        batch.clear()

    async def start(self) -> None:
        """Start the background worker."""
        if self._running:
            return
        self._running = True
        self._worker_task = asyncio.create_task(self._process_jobs())

    async def stop(self) -> None:
        """Run every queued job, then stop the worker."""
        if not self._running:
            await self.run_pending()
            return
        self._running = False
        # The stop marker sorts after every real job
        self._queue.put_nowait(DeferredJob(math.inf, next(self._sequence)))
        if self._worker_task:
            await self._worker_task
            self._worker_task = None
        await self.run_pending()

    async def run_pending(self) -> int:
        """Drain the queue inline; returns how many jobs ran."""
        count = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            if job.func is None:
                continue
            await self._run(job)
            count += 1

    async def _process_jobs(self) -> None:
        while True:
            job = await self._queue.get()
            if job.func is None:
                return
            await self._run(job)

    async def _run(self, job: DeferredJob) -> None:
        try:
            result = job.func(*job.args, **job.kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Deferred job {job.name} failed: {e}")
