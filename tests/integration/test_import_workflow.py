"""Integration tests for import ordering, failures, resolutions and cancellation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from schemaport.backends.memory import InMemorySchemaBackend
from schemaport.backends.protocol import EntityPayload
from schemaport.config import EngineSettings
from schemaport.errors import ConflictUnresolvedError, OperationCancelledError, UpstreamWriteError
from schemaport.models.entities import Entity, Field, ItemType
from schemaport.schema import (
    ConflictReport,
    ItemTypeResolution,
    MappingKind,
    Resolutions,
    apply_import,
    build_conflicts,
)
from schemaport.sources import ExportSchemaSource, ProjectSchemaSource
from schemaport.tasks import CancellationToken, ProgressCallback, TaskController
from tests.factories import (
    blog_entities,
    cyclic_entities,
    make_document,
    make_field,
    make_item_type,
    reid_entities,
    run,
)


class FailingBackend(InMemorySchemaBackend):
    """Rejects the creation of one field."""

    def __init__(self, failing_api_key: str, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.failing_api_key = failing_api_key

    async def create_field(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        if data["attributes"].get("api_key") == self.failing_api_key:
            raise RuntimeError("422 Unprocessable Entity")
        return await super().create_field(item_type_id, data)


class OverlapTrackingBackend(InMemorySchemaBackend):
    """Records how many field creations overlap."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_field(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.001)
            return await super().create_field(item_type_id, data)
        finally:
            self.in_flight -= 1


def conflicts(export_source: ExportSchemaSource, backend: InMemorySchemaBackend) -> ConflictReport:
    return run(build_conflicts(export_source, ProjectSchemaSource(backend)))


class TestCyclicImport:
    """Two item types referencing each other."""

    @pytest.mark.integration
    def test_cycle_created_then_patched(self, empty_backend: InMemorySchemaBackend) -> None:
        source = ExportSchemaSource(make_document(cyclic_entities(), root_item_type_id="it-a"))

        result = run(
            apply_import(source, conflicts(source, empty_backend), Resolutions(), empty_backend)
        )

        operations = [operation for operation, _ in empty_backend.calls]
        assert operations == [
            "create_item_type",
            "create_item_type",
            "create_fieldset",
            "create_fieldset",
            "create_field",
            "create_field",
            "update_field",
            "update_field",
        ]
        assert result.fields_patched == 2

        fields = {f.api_key: f for f in empty_backend.entities() if isinstance(f, Field)}
        assert fields["bundle"].linked_item_type_ids() == [
            result.mapping.get(MappingKind.ITEM_TYPE, "it-b")
        ]
        assert fields["article"].linked_item_type_ids() == [
            result.mapping.get(MappingKind.ITEM_TYPE, "it-a")
        ]

    @pytest.mark.integration
    def test_progress_reaches_total(self, empty_backend: InMemorySchemaBackend) -> None:
        source = ExportSchemaSource(make_document(cyclic_entities(), root_item_type_id="it-a"))
        calls: list[tuple[int, int]] = []

        run(
            apply_import(
                source,
                conflicts(source, empty_backend),
                Resolutions(),
                empty_backend,
                on_progress=lambda done, total: calls.append((done, total)),
            )
        )

        assert [done for done, _ in calls] == list(range(1, 9))
        assert {total for _, total in calls} == {8}


class TestWritePool:
    """Sibling writes are bounded by the configured pool size."""

    @pytest.mark.integration
    @pytest.mark.parametrize(
        ("explicit", "settings", "expected"),
        [
            (None, EngineSettings(concurrency=1), 1),
            (1, EngineSettings(concurrency=6), 1),
        ],
    )
    def test_pool_size(
        self,
        blog_source: ExportSchemaSource,
        explicit: int | None,
        settings: EngineSettings,
        expected: int,
    ) -> None:
        backend = OverlapTrackingBackend()

        run(
            apply_import(
                blog_source,
                conflicts(blog_source, backend),
                Resolutions(),
                backend,
                concurrency=explicit,
                settings=settings,
            )
        )

        assert backend.max_in_flight == expected

    @pytest.mark.integration
    def test_default_pool_overlaps_writes(self, blog_source: ExportSchemaSource) -> None:
        backend = OverlapTrackingBackend()

        run(apply_import(blog_source, conflicts(blog_source, backend), Resolutions(), backend))

        assert backend.max_in_flight > 1


class TestUpstreamFailure:
    """The destination rejects a write half way through."""

    @pytest.mark.integration
    def test_error_carries_partial_mapping(self, blog_source: ExportSchemaSource) -> None:
        backend = FailingBackend("author")

        with pytest.raises(UpstreamWriteError) as exc_info:
            run(apply_import(blog_source, conflicts(blog_source, backend), Resolutions(), backend))

        error = exc_info.value
        assert isinstance(error.original_exception, RuntimeError)
        assert error.entity_id == "f-author"
        assert error.operation == "Create field"
        assert error.mapping.get(MappingKind.ITEM_TYPE, "it-post") is not None
        assert error.mapping.get(MappingKind.FIELD, "f-author") is None
        assert "f-author" in error.mapping.pending_ids(MappingKind.FIELD)

    @pytest.mark.integration
    def test_nothing_is_rolled_back(self, blog_source: ExportSchemaSource) -> None:
        backend = FailingBackend("author")

        with pytest.raises(UpstreamWriteError):
            run(apply_import(blog_source, conflicts(blog_source, backend), Resolutions(), backend))

        assert len([e for e in backend.entities() if isinstance(e, ItemType)]) == 3


class TestResolutions:
    """Resolutions decide what the import writes."""

    @staticmethod
    def colliding_destination() -> InMemorySchemaBackend:
        """Blog under other ids, the author carrying an extra field."""
        entities: list[Entity] = reid_entities(blog_entities())
        entities.append(make_field("dst-f-bio", "dst-it-author", "bio", "text", position=2))
        return InMemorySchemaBackend(entities)

    @pytest.mark.integration
    def test_unresolved_collision_writes_nothing(self, blog_source: ExportSchemaSource) -> None:
        backend = self.colliding_destination()
        report = conflicts(blog_source, backend)

        with pytest.raises(ConflictUnresolvedError, match="item_type 'author'"):
            run(apply_import(blog_source, report, Resolutions(), backend))

        assert backend.calls == []

    @pytest.mark.integration
    def test_reuse_existing(self, blog_source: ExportSchemaSource) -> None:
        backend = self.colliding_destination()
        report = conflicts(blog_source, backend)
        resolutions = Resolutions(item_types={"it-author": ItemTypeResolution.reuse_existing()})

        result = run(apply_import(blog_source, report, resolutions, backend))

        assert backend.calls == []
        assert result.mapping.get(MappingKind.ITEM_TYPE, "it-author") == "dst-it-author"

    @pytest.mark.integration
    def test_rename_creates_a_copy(self, blog_source: ExportSchemaSource) -> None:
        backend = self.colliding_destination()
        report = conflicts(blog_source, backend)
        resolutions = Resolutions(
            item_types={"it-author": ItemTypeResolution.rename("Writer", "writer")}
        )

        result = run(apply_import(blog_source, report, resolutions, backend))

        created_id = result.mapping.get(MappingKind.ITEM_TYPE, "it-author")
        created = next(
            e for e in backend.entities() if isinstance(e, ItemType) and e.id == created_id
        )
        assert (created.api_key, created.name) == ("writer", "Writer")
        assert [operation for operation, _ in backend.calls] == ["create_item_type", "create_field"]


class TestCancellation:
    """Cooperative cancellation through the task controller."""

    @staticmethod
    def many_item_types(count: int) -> ExportSchemaSource:
        entities: list[Entity] = [make_item_type(f"it-{i}", f"model_{i}") for i in range(count)]
        return ExportSchemaSource(make_document(entities, root_item_type_id="it-0"))

    @pytest.mark.integration
    def test_conflict_check_stops_after_cancel(self) -> None:
        source = self.many_item_types(100)
        project = ProjectSchemaSource(InMemorySchemaBackend(latency=0.001))
        controller = TaskController()

        def cancelling_at(
            target: int, on_progress: ProgressCallback
        ) -> Callable[[int, int], None]:
            def progress(done: int, total: int) -> None:
                on_progress(done, total)
                if done == target:
                    controller.request_cancel()

            return progress

        result = run(
            controller.run(
                lambda on_progress, token: build_conflicts(
                    source,
                    project,
                    on_progress=cancelling_at(10, on_progress),
                    cancel_token=token,
                ),
                label="Checking conflicts",
            )
        )

        assert result is None
        assert controller.state.cancelled
        assert controller.state.cancel_requested
        assert controller.state.progress.done == 10
        assert controller.state.progress.total == 100

    @pytest.mark.integration
    def test_import_cancel_keeps_partial_mapping(self, empty_backend: InMemorySchemaBackend) -> None:
        source = self.many_item_types(5)
        report = conflicts(source, empty_backend)
        token = CancellationToken()

        def progress(done: int, total: int) -> None:
            if done == 2:
                token.cancel()

        with pytest.raises(OperationCancelledError) as exc_info:
            run(
                apply_import(
                    source,
                    report,
                    Resolutions(),
                    empty_backend,
                    on_progress=progress,
                    cancel_token=token,
                )
            )

        assert len(exc_info.value.mapping) == 2
        assert len(empty_backend.calls) == 2
