# execution/coordinator.py
"""Runs a batch of dependent system operations off the event loop.

Consumers read messages with :meth:`ExecutionCoordinator.drain` (once per
control-loop iteration) or ``async for`` over :meth:`stream`. For every task
there is exactly one ``Started`` (unless it is skipped), any number of
``Progress`` and exactly one ``Completed``; ``AllDone`` follows the last
``Completed``.
"""
from __future__ import annotations
import asyncio
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from errors import CoordinatorError
from execution.tasks import (
    SKIPPED, AllDone, Completed, ExecutionTask, Failed, Message, Progress,
    Started, Succeeded, TaskSpec, TaskStatus,
)
from logger import log

SIMULATED_STEPS = 10
STEP_INTERVAL = 0.25

# runner(invocation, progress) -> output; runs on a worker thread.
Runner = Callable[[Any, Callable[[str], None]], str]


class ExecutionCoordinator:
    def __init__(
        self,
        runner: Optional[Runner] = None,
        simulate: bool = False,
        max_parallel: int = 1,
        step_interval: float = STEP_INTERVAL,
        notify: Callable[[], None] = lambda: None,
    ) -> None:
        if runner is None and not simulate:
            raise ValueError("a runner is required unless simulating")
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.runner = runner
        self.simulate = simulate
        self.max_parallel = max_parallel
        self.step_interval = step_interval
        self.notify = notify
        self.tasks: Dict[str, ExecutionTask] = {}
        self._specs: Dict[str, TaskSpec] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._done: Dict[str, asyncio.Event] = {}
        self._jobs: List[asyncio.Task] = []
        self._started = False
        self._finished = False

    # -- Setup ---------------------------------------------------------------

    def enqueue(self, specs: Iterable[TaskSpec]) -> None:
        specs = list(specs)
        if not specs:
            return
        if self._started:
            raise CoordinatorError("cannot enqueue after start()")
        for spec in specs:
            if spec.id in self._specs:
                raise ValueError(f"duplicate task id {spec.id!r}")
            self._specs[spec.id] = spec
            self.tasks[spec.id] = ExecutionTask.from_spec(spec)

    def _validate(self) -> None:
        for spec in self._specs.values():
            for dep in spec.depends_on:
                if dep not in self._specs:
                    raise CoordinatorError(f"task {spec.id!r} depends on unknown task {dep!r}")

        visiting, visited = set(), set()

        def visit(task_id: str) -> None:
            if task_id in visited:
                return
            if task_id in visiting:
                raise CoordinatorError(f"dependency cycle through {task_id!r}")
            visiting.add(task_id)
            for dep in self._specs[task_id].depends_on:
                visit(dep)
            visiting.discard(task_id)
            visited.add(task_id)

        for task_id in self._specs:
            visit(task_id)

    def start(self) -> None:
        if self._started:
            raise CoordinatorError("coordinator already started")
        self._validate()
        self._started = True
        mode = "simulated" if self.simulate else "real"
        log.info("Starting %d task(s) (%s)", len(self._specs), mode)
        if not self._specs:
            self._finish()
            return
        loop = asyncio.get_running_loop()
        self._semaphore = asyncio.Semaphore(self.max_parallel)
        self._done = {task_id: asyncio.Event() for task_id in self._specs}
        for spec in self._specs.values():
            self._jobs.append(loop.create_task(self._run(spec)))

    # -- Consumption -----------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def finished(self) -> bool:
        return self._finished

    def drain(self) -> List[Message]:
        messages = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages

    async def stream(self) -> AsyncIterator[Message]:
        while True:
            message = await self._queue.get()
            yield message
            if isinstance(message, AllDone):
                return

    def abandon(self) -> bool:
        """Stop simulated work. Real system operations cannot be interrupted."""
        if not self.simulate:
            return False
        for job in self._jobs:
            job.cancel()
        log.info("Abandoned simulated execution")
        return True

    # -- Execution -------------------------------------------------------------

    def _emit(self, message: Message) -> None:
        task = self.tasks.get(getattr(message, "id", None))
        if task is not None:
            task.apply(message)
        self._queue.put_nowait(message)
        self.notify()

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            failed = sum(1 for t in self.tasks.values() if t.status is TaskStatus.FAILED)
            log.info("All tasks done (%d failed)", failed)
            self._emit(AllDone())

    async def _run(self, spec: TaskSpec) -> None:
        try:
            for dep in spec.depends_on:
                await self._done[dep].wait()
            if any(self.tasks[dep].status is TaskStatus.FAILED for dep in spec.depends_on):
                log.warning("Skipping %s: dependency failed", spec.id)
                self._emit(Completed(spec.id, Failed(SKIPPED)))
                return
            async with self._semaphore:
                self._emit(Started(spec.id))
                log.info("Running task %s: %s", spec.id, spec.label)
                try:
                    if self.simulate:
                        output = await self._simulate(spec)
                    else:
                        output = await self._execute(spec)
                except asyncio.CancelledError:
                    raise
                except Exception as e:  # any runner failure fails only this task
                    message = str(e) or type(e).__name__
                    log.error("Task %s failed: %s", spec.id, message)
                    self._emit(Completed(spec.id, Failed(message)))
                else:
                    log.info("Task %s succeeded", spec.id)
                    self._emit(Completed(spec.id, Succeeded(output or "")))
        finally:
            self._done[spec.id].set()
            if all(task.terminal for task in self.tasks.values()):
                self._finish()

    async def _simulate(self, spec: TaskSpec) -> str:
        for step in range(1, SIMULATED_STEPS + 1):
            await asyncio.sleep(self.step_interval)
            self._emit(Progress(spec.id, f"{step * 100 // SIMULATED_STEPS}%"))
        return "simulated"

    async def _execute(self, spec: TaskSpec) -> str:
        loop = asyncio.get_running_loop()

        def progress(text: str) -> None:
            loop.call_soon_threadsafe(self._emit, Progress(spec.id, text))

        return await loop.run_in_executor(None, self.runner, spec.invocation, progress)
