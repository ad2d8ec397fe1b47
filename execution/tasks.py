# execution/tasks.py
from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from errors import CoordinatorError

SKIPPED = "skipped: dependency failed"


class TaskStatus(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# PENDING -> FAILED is the skip path: the task never ran.
_ALLOWED = {
    TaskStatus.PENDING: {TaskStatus.RUNNING, TaskStatus.FAILED},
    TaskStatus.RUNNING: {TaskStatus.SUCCEEDED, TaskStatus.FAILED},
    TaskStatus.SUCCEEDED: set(),
    TaskStatus.FAILED: set(),
}


@dataclass(frozen=True)
class TaskSpec:
    id: str
    label: str
    depends_on: Tuple[str, ...] = ()
    invocation: Any = None


# -- Outcomes and messages -------------------------------------------------------

@dataclass(frozen=True)
class Succeeded:
    output: str = ""


@dataclass(frozen=True)
class Failed:
    message: str


Outcome = Union[Succeeded, Failed]


@dataclass(frozen=True)
class Started:
    id: str


@dataclass(frozen=True)
class Progress:
    id: str
    text: str


@dataclass(frozen=True)
class Completed:
    id: str
    outcome: Outcome


@dataclass(frozen=True)
class AllDone:
    pass


Message = Union[Started, Progress, Completed, AllDone]


@dataclass
class ExecutionTask:
    id: str
    label: str
    depends_on: Tuple[str, ...] = ()
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    output: str = ""
    progress: str = ""
    category: str = field(default="", compare=False)

    @classmethod
    def from_spec(cls, spec: TaskSpec, category: str = "") -> "ExecutionTask":
        return cls(spec.id, spec.label, tuple(spec.depends_on), category=category)

    @property
    def terminal(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)

    @property
    def skipped(self) -> bool:
        return self.status is TaskStatus.FAILED and self.error == SKIPPED

    def transition(self, status: TaskStatus) -> None:
        if status not in _ALLOWED[self.status]:
            raise CoordinatorError(
                f"task {self.id}: illegal transition {self.status.name} -> {status.name}"
            )
        self.status = status

    def apply(self, message: Message) -> None:
        """Update this task from a coordinator message addressed to it."""
        if isinstance(message, Started):
            self.transition(TaskStatus.RUNNING)
        elif isinstance(message, Progress):
            self.progress = message.text
        elif isinstance(message, Completed):
            if isinstance(message.outcome, Succeeded):
                self.transition(TaskStatus.SUCCEEDED)
                self.output = message.outcome.output
            else:
                self.transition(TaskStatus.FAILED)
                self.error = message.outcome.message
