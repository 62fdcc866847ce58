"""Long-running task controller and cooperative cancellation.

Every long operation (building a conflict report, applying an import) takes
an ``on_progress`` callback and a ``CancellationToken``. The
``TaskController`` owns both for one operation at a time and tracks its
status:

    idle -> running -> completed
                    -> failed
                    -> cancelling -> completed (cancelled=True)

The controller holds no business logic. UI layers poll ``state`` for
progress bars and call ``request_cancel()`` from a cancel button.

Example:
    controller = TaskController()
    report = await controller.run(
        lambda on_progress, token: build_conflicts(
            export_source, project_source, on_progress=on_progress, cancel_token=token
        ),
        label="Checking conflicts",
    )
    if controller.state.cancelled:
        ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from schemaport.errors import OperationCancelledError

if TYPE_CHECKING:
    from schemaport.schema.mapping import MigrationMapping

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Flag polled by long-running loops at their checkpoints."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(
        self, operation: str = "Operation", mapping: MigrationMapping | None = None
    ) -> None:
        """Raise OperationCancelledError if cancellation was requested.

        Args:
            operation: Name used in the error message.
            mapping: Partial migration mapping to attach, for the import applier.
        """
        if self._cancelled:
            raise OperationCancelledError(operation, mapping=mapping)


class TaskStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskProgress:
    """What a progress bar shows. Every part is optional."""

    label: str | None = None
    done: int | None = None
    total: int | None = None

    def merge(self, **partial: Any) -> TaskProgress:
        """Return a copy with the non-None values of ``partial`` applied."""
        updates = {key: value for key, value in partial.items() if value is not None}
        return replace(self, **updates)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {"label": self.label, "done": self.done, "total": self.total}


@dataclass(frozen=True)
class TaskState:
    """Snapshot of a controller's state.

    Attributes:
        status: Current status.
        cancel_requested: Whether ``request_cancel()`` was called in this run.
        progress: Latest progress.
        error: The failure, when status is FAILED.
        cancelled: True when the run ended at a cancellation checkpoint.
    """

    status: TaskStatus = TaskStatus.IDLE
    cancel_requested: bool = False
    progress: TaskProgress = field(default_factory=TaskProgress)
    error: BaseException | None = None
    cancelled: bool = False


class TaskController:
    """State machine driving progress and cancellation for one operation at a time."""

    def __init__(self) -> None:
        self.state = TaskState()
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        """Token for the current run. Replaced by ``start()`` and ``reset()``."""
        return self._token

    @property
    def status(self) -> TaskStatus:
        return self.state.status

    def start(self, progress: TaskProgress | None = None) -> None:
        """Begin a run, discarding whatever the previous run left behind."""
        self._token = CancellationToken()
        self.state = TaskState(status=TaskStatus.RUNNING, progress=progress or TaskProgress())

    def set_progress(self, **partial: Any) -> None:
        """Merge ``label``/``done``/``total`` into the progress; status is unchanged."""
        self.state = replace(self.state, progress=self.state.progress.merge(**partial))

    def complete(self, **progress: Any) -> None:
        self.state = replace(
            self.state,
            status=TaskStatus.COMPLETED,
            progress=self.state.progress.merge(**progress),
            error=None,
        )

    def fail(self, error: BaseException) -> None:
        self.state = replace(self.state, status=TaskStatus.FAILED, error=error)

    def request_cancel(self) -> None:
        """Ask the running operation to stop at its next checkpoint."""
        self._token.cancel()
        status = self.state.status
        if status is TaskStatus.RUNNING:
            status = TaskStatus.CANCELLING
        self.state = replace(self.state, status=status, cancel_requested=True)

    def reset(self) -> None:
        self._token = CancellationToken()
        self.state = TaskState()

    def is_cancel_requested(self) -> bool:
        return self._token.cancelled

    def on_progress(self, done: int, total: int) -> None:
        """Progress callback to hand to long-running functions."""
        self.set_progress(done=done, total=total)

    async def run(
        self,
        fn: Callable[[ProgressCallback, CancellationToken], Awaitable[T]],
        *,
        label: str | None = None,
    ) -> T | None:
        """Drive ``fn`` through the state machine.

        ``fn`` receives this controller's progress callback and the run's
        token. Cancellation is a normal outcome: the run ends COMPLETED with
        ``state.cancelled`` set and None is returned. Any other exception
        marks the run FAILED and propagates. If the awaiting task itself is
        cancelled the run still ends COMPLETED and cancelled, and
        ``asyncio.CancelledError`` propagates.
        """
        self.start(TaskProgress(label=label))
        try:
            result = await fn(self.on_progress, self._token)
        except OperationCancelledError as e:
            logger.info("%s", e.message)
            self.complete()
            self.state = replace(self.state, cancelled=True)
            return None
        except asyncio.CancelledError:
            logger.info("%s interrupted", label or "Task")
            self.complete()
            self.state = replace(self.state, cancelled=True)
            raise
        except Exception as e:
            self.fail(e)
            raise
        self.complete()
        return result
