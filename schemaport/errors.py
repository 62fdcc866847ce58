"""Structured error codes for schemaport.

All errors follow the format SPRT-{category}{number}:
- SPRT-ENT*: Entity lookup errors
- SPRT-DOC*: Export document errors
- SPRT-TSK*: Long-running task errors
- SPRT-IMP*: Import errors
- SPRT-CFG*: Configuration errors
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from schemaport.schema.mapping import MigrationMapping


class SchemaportError(Exception):
    """Base class for all schemaport errors.

    All errors have:
    - code: Structured error code (e.g., SPRT-ENT001)
    - message: Human-readable error message
    """

    code: str = "SPRT-000"

    # Reserved attribute names that cannot be overwritten by context
    _RESERVED_ATTRS = frozenset({"code", "message", "context", "args"})

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize a schemaport error.

        Args:
            message: Human-readable error message.
            **context: Additional context stored as error attributes.
                Reserved keys (code, message, context, args) are ignored.
        """
        self.message = message
        self.context = context
        for key, value in context.items():
            if key not in self._RESERVED_ATTRS:
                setattr(self, key, value)
        super().__init__(f"[{self.code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# Entity Errors (SPRT-ENT*)
class EntityError(SchemaportError):
    """Base class for entity lookup errors."""

    code = "SPRT-ENT000"


class EntityNotFoundError(EntityError):
    """Raised when a lookup by id, api key or name finds nothing.

    Error code: SPRT-ENT001

    Always a data-integrity or programming error; never retried.
    """

    code = "SPRT-ENT001"

    def __init__(self, kind: str, key: str, *, by: str = "ID") -> None:
        super().__init__(f"{kind} with {by} '{key}' not found", kind=kind, key=key, by=by)


# Document Errors (SPRT-DOC*)
class DocumentError(SchemaportError):
    """Base class for export document errors."""

    code = "SPRT-DOC000"


class InvalidExportDocumentError(DocumentError):
    """Raised when an export document cannot be parsed or normalised.

    Error code: SPRT-DOC001
    """

    code = "SPRT-DOC001"

    def __init__(self, reason: str, path: str | None = None) -> None:
        where = f" ({path})" if path else ""
        super().__init__(f"Invalid export document{where}: {reason}", reason=reason, path=path)


# Task Errors (SPRT-TSK*)
class TaskError(SchemaportError):
    """Base class for long-running task errors."""

    code = "SPRT-TSK000"


class OperationCancelledError(TaskError):
    """Raised at a cancellation checkpoint after cancellation was requested.

    Error code: SPRT-TSK001

    Callers treat this as a normal outcome, not a failure. When raised by the
    import applier, ``mapping`` holds the ids bound before the checkpoint.
    """

    code = "SPRT-TSK001"

    def __init__(self, operation: str, mapping: MigrationMapping | None = None) -> None:
        super().__init__(f"{operation} cancelled", operation=operation)
        self.mapping = mapping


# Import Errors (SPRT-IMP*)
class SchemaImportError(SchemaportError):
    """Base class for import errors."""

    code = "SPRT-IMP000"


class ConflictUnresolvedError(SchemaImportError):
    """Raised when colliding entities have no resolution.

    Error code: SPRT-IMP001

    Detected before any write is attempted.
    """

    code = "SPRT-IMP001"

    def __init__(self, unresolved: list[str]) -> None:
        super().__init__(
            f"{len(unresolved)} colliding entit{'y' if len(unresolved) == 1 else 'ies'} "
            f"without a resolution: {', '.join(unresolved)}",
            unresolved=unresolved,
        )


class InvalidResolutionError(SchemaImportError):
    """Raised when a resolution cannot be applied (bad rename, wrong strategy).

    Error code: SPRT-IMP002
    """

    code = "SPRT-IMP002"

    def __init__(self, entity_id: str, reason: str) -> None:
        super().__init__(
            f"Invalid resolution for '{entity_id}': {reason}",
            entity_id=entity_id,
            reason=reason,
        )


class UpstreamWriteError(SchemaImportError):
    """Raised when the schema-writing collaborator rejects a create/update call.

    Error code: SPRT-IMP003

    The collaborator's exception is kept on ``original_exception`` and the
    partially built mapping on ``mapping`` so callers can report exactly
    which entities were written before the failure.
    """

    code = "SPRT-IMP003"

    def __init__(
        self,
        operation: str,
        entity_id: str,
        original_error: Exception,
        mapping: MigrationMapping,
    ) -> None:
        super().__init__(
            f"{operation} failed for '{entity_id}': {original_error}",
            operation=operation,
            entity_id=entity_id,
            original_error_type=type(original_error).__name__,
            original_error_message=str(original_error),
        )
        # Not serialized by to_dict()
        self.original_exception = original_error
        self.mapping = mapping


# Configuration Errors (SPRT-CFG*)
class ConfigError(SchemaportError):
    """Base class for configuration-related errors."""

    code = "SPRT-CFG000"


class ConfigParseError(ConfigError):
    """Raised when a configuration file cannot be parsed.

    Error code: SPRT-CFG001
    """

    code = "SPRT-CFG001"

    def __init__(self, path: str, parse_error: str) -> None:
        super().__init__(
            f"Failed to parse config file {path}: {parse_error}",
            path=path,
            parse_error=parse_error,
        )


class ConfigInvalidValueError(ConfigError):
    """Raised when a configuration value has the wrong type or range.

    Error code: SPRT-CFG002
    """

    code = "SPRT-CFG002"

    def __init__(self, key: str, value: Any, expected: str) -> None:
        super().__init__(
            f"Invalid value for '{key}': {value!r} (expected {expected})",
            key=key,
            value=value,
            expected=expected,
        )
