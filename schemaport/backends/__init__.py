"""Where schemaport reads schemas from and writes them to.

One backend ships with the package: ``memory``, a project held in process,
used by the test-suite and for dry runs. Clients for a real content API are
installed separately and announce themselves in the ``schemaport.backends``
entry-point group::

    [project.entry-points."schemaport.backends"]
    cma = "schemaport_cma:CmaBackend"

A backend class is called with the keyword options given to
:func:`get_backend`, so credentials and endpoints travel through there.
"""

from __future__ import annotations

import logging
from importlib.metadata import EntryPoint, entry_points
from typing import Any

from schemaport.backends.protocol import EntityPayload, SchemaReader, SchemaWriter

__all__ = [
    "EntityPayload",
    "SchemaReader",
    "SchemaWriter",
    "available_backends",
    "get_backend",
]

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "schemaport.backends"
BUILTIN_BACKEND = "memory"


def _plugins() -> dict[str, EntryPoint]:
    """Installed backend plugins keyed by name. A plugin cannot shadow ``memory``."""
    found: dict[str, EntryPoint] = {}
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name == BUILTIN_BACKEND:
            logger.warning("Ignoring plugin registered under reserved name %r", ep.name)
            continue
        found.setdefault(ep.name, ep)
    return found


def available_backends() -> list[str]:
    """Names accepted by :func:`get_backend`, built-in first."""
    return [BUILTIN_BACKEND, *sorted(_plugins())]


def get_backend(name: str = BUILTIN_BACKEND, **options: Any) -> SchemaReader:
    """Create a fresh backend instance.

    The result is always a :class:`SchemaReader`. Only some backends can
    write, so callers that import should check
    ``isinstance(backend, SchemaWriter)`` first.

    Raises:
        ValueError: The name is unknown, or the plugin cannot be loaded,
            constructed, or does not read schemas.
    """
    if name == BUILTIN_BACKEND:
        from schemaport.backends.memory import InMemorySchemaBackend

        return InMemorySchemaBackend(**options)

    plugins = _plugins()
    ep = plugins.get(name)
    if ep is None:
        known = ", ".join([BUILTIN_BACKEND, *sorted(plugins)])
        raise ValueError(f"Unknown backend: {name}. Available: {known}")

    backend = _instantiate(ep, options)
    if not isinstance(backend, SchemaReader):
        raise _plugin_error(f"Backend '{name}' does not implement SchemaReader protocol")
    logger.debug(
        "Backend %r ready (%s)",
        name,
        "read/write" if isinstance(backend, SchemaWriter) else "read-only",
    )
    return backend


def _instantiate(ep: EntryPoint, options: dict[str, Any]) -> object:
    try:
        backend_class = ep.load()
    except Exception as e:
        raise _plugin_error(f"Failed to load backend '{ep.name}': {e}") from e
    try:
        return backend_class(**options)
    except Exception as e:
        raise _plugin_error(f"Failed to instantiate backend '{ep.name}': {e}") from e


def _plugin_error(message: str) -> ValueError:
    logger.error(message)
    return ValueError(message)
