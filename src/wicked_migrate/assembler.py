"""Assemble mapped connections into a network state."""

from __future__ import annotations

import logging
from typing import Iterable

from .models import Connection, GeneralState, NetworkState

LOG = logging.getLogger("wicked_migrate.assembler")


def assemble_state(connections: Iterable[Connection], general: GeneralState | None = None) -> NetworkState:
    """Insert connections into a fresh state; duplicates raise DuplicateConnectionError."""
    state = NetworkState(general=general or GeneralState())
    for connection in connections:
        state.add_connection(connection)
    LOG.debug("Assembled %s connections", len(state.connections))
    return state
