"""Resolve port connections to the uuid of their controller."""

from __future__ import annotations

import logging
from typing import Mapping
from uuid import UUID

from .models import Connection, MigrationAborted, ResolutionError

LOG = logging.getLogger("wicked_migrate.resolver")


def resolve_controllers(
    connections: list[Connection],
    parent_of: Mapping[str, str],
    continue_migration: bool = False,
) -> list[str]:
    """Set ``controller`` on every child connection and return warnings.

    Parents are looked up by interface name over the complete connection
    list first; controllers are only assigned once every parent is known.
    """
    warnings: list[str] = []
    parent_uuid: dict[str, UUID] = {}

    for child_id, parent in parent_of.items():
        parent_connection = next((c for c in connections if c.interface == parent), None)
        if parent_connection is None:
            message = f"Missing parent {parent} connection for {child_id}"
            LOG.warning(message)
            if not continue_migration:
                raise MigrationAborted(
                    f"Migration of {child_id} failed: {message}, use the `--continue-migration` flag to ignore"
                )
            warnings.append(message)
            continue
        parent_uuid[child_id] = parent_connection.uuid

    for child_id, uuid in parent_uuid.items():
        child = next((c for c in connections if c.id == child_id), None)
        if child is None:
            raise ResolutionError(f"Unexpected failure - missing connection {child_id}")
        child.controller = uuid
        LOG.debug("Connection %s is controlled by %s", child_id, uuid)

    return warnings
