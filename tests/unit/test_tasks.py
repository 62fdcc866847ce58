"""Unit tests for the long-running task controller and cancellation token."""

from __future__ import annotations

import asyncio

import pytest

from schemaport.errors import OperationCancelledError
from schemaport.schema.mapping import MigrationMapping
from schemaport.tasks import (
    CancellationToken,
    TaskController,
    TaskProgress,
    TaskStatus,
)
from tests.factories import run


class TestCancellationToken:
    """Tests for CancellationToken."""

    @pytest.mark.unit
    def test_not_cancelled_by_default(self) -> None:
        token = CancellationToken()

        assert not token.cancelled
        token.raise_if_cancelled()

    @pytest.mark.unit
    def test_raise_after_cancel_carries_mapping(self) -> None:
        token = CancellationToken()
        mapping = MigrationMapping()
        token.cancel()

        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled("Import", mapping=mapping)
        assert exc_info.value.mapping is mapping
        assert exc_info.value.operation == "Import"  # type: ignore[attr-defined]


class TestTaskProgress:
    """Tests for TaskProgress.merge()."""

    @pytest.mark.unit
    def test_merge_ignores_none(self) -> None:
        progress = TaskProgress(label="Importing", done=1, total=4)

        merged = progress.merge(done=2, label=None)

        assert merged == TaskProgress(label="Importing", done=2, total=4)
        assert progress.done == 1


class TestTaskControllerStateMachine:
    """Tests for the idle -> running -> completed/failed/cancelling transitions."""

    @pytest.mark.unit
    def test_starts_idle(self) -> None:
        controller = TaskController()

        assert controller.status is TaskStatus.IDLE
        assert controller.state.progress == TaskProgress()

    @pytest.mark.unit
    def test_start_and_complete(self) -> None:
        controller = TaskController()
        controller.start(TaskProgress(label="Checking"))
        controller.set_progress(done=1, total=2)
        controller.complete(done=2)

        assert controller.status is TaskStatus.COMPLETED
        assert controller.state.progress == TaskProgress(label="Checking", done=2, total=2)

    @pytest.mark.unit
    def test_set_progress_keeps_status(self) -> None:
        controller = TaskController()
        controller.start()
        controller.set_progress(label="Fields")

        assert controller.status is TaskStatus.RUNNING
        assert controller.state.progress.label == "Fields"

    @pytest.mark.unit
    def test_request_cancel_moves_running_to_cancelling(self) -> None:
        controller = TaskController()
        controller.start()
        controller.request_cancel()

        assert controller.status is TaskStatus.CANCELLING
        assert controller.state.cancel_requested
        assert controller.is_cancel_requested()
        assert controller.token.cancelled

    @pytest.mark.unit
    def test_request_cancel_when_idle_keeps_status(self) -> None:
        controller = TaskController()
        controller.request_cancel()

        assert controller.status is TaskStatus.IDLE

    @pytest.mark.unit
    def test_start_issues_fresh_token(self) -> None:
        controller = TaskController()
        controller.start()
        controller.request_cancel()
        old_token = controller.token

        controller.start()

        assert controller.token is not old_token
        assert not controller.is_cancel_requested()
        assert not controller.state.cancel_requested

    @pytest.mark.unit
    def test_fail_records_error(self) -> None:
        controller = TaskController()
        controller.start()
        error = RuntimeError("boom")
        controller.fail(error)

        assert controller.status is TaskStatus.FAILED
        assert controller.state.error is error

    @pytest.mark.unit
    def test_reset(self) -> None:
        controller = TaskController()
        controller.start(TaskProgress(label="x", done=1))
        controller.reset()

        assert controller.status is TaskStatus.IDLE
        assert controller.state.progress == TaskProgress()


class TestTaskControllerRun:
    """Tests for TaskController.run()."""

    @pytest.mark.unit
    def test_run_returns_result_and_tracks_progress(self) -> None:
        controller = TaskController()

        async def work(on_progress, token):  # type: ignore[no-untyped-def]
            for done in range(1, 4):
                token.raise_if_cancelled()
                on_progress(done, 3)
            return "ok"

        result = run(controller.run(work, label="Working"))

        assert result == "ok"
        assert controller.status is TaskStatus.COMPLETED
        assert controller.state.progress == TaskProgress(label="Working", done=3, total=3)
        assert not controller.state.cancelled

    @pytest.mark.unit
    def test_cancelled_run_completes_with_flag(self) -> None:
        controller = TaskController()

        async def work(on_progress, token):  # type: ignore[no-untyped-def]
            for done in range(1, 10):
                token.raise_if_cancelled("Work")
                on_progress(done, 9)
                if done == 2:
                    controller.request_cancel()
            return "finished"

        result = run(controller.run(work))

        assert result is None
        assert controller.status is TaskStatus.COMPLETED
        assert controller.state.cancelled
        assert controller.state.progress.done == 2

    @pytest.mark.unit
    def test_failure_propagates_and_marks_failed(self) -> None:
        controller = TaskController()

        async def work(on_progress, token):  # type: ignore[no-untyped-def]
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            run(controller.run(work))
        assert controller.status is TaskStatus.FAILED
        assert isinstance(controller.state.error, ValueError)

    @pytest.mark.unit
    def test_outer_task_cancel_ends_run(self) -> None:
        controller = TaskController()
        started = asyncio.Event()

        async def work(on_progress, token):  # type: ignore[no-untyped-def]
            started.set()
            await asyncio.sleep(60)

        async def scenario() -> None:
            task = asyncio.ensure_future(controller.run(work, label="Import"))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())

        assert controller.status is TaskStatus.COMPLETED
        assert controller.state.cancelled
        assert controller.state.error is None
