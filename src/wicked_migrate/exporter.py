"""Utilities to serialise network state into declarative formats."""

from __future__ import annotations

import dataclasses
import json
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from .models import Connection, NetworkState


def _plain(value: Any) -> Any:
    """Convert dataclass trees into YAML/JSON friendly values, dropping empties."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        result = {}
        for item in dataclasses.fields(value):
            converted = _plain(getattr(value, item.name))
            if converted is None or converted == [] or converted == {}:
                continue
            result[item.name] = converted
        return result
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def connection_to_dict(connection: Connection) -> dict[str, Any]:
    """Convert a connection into a serialisable dictionary."""
    return _plain(connection)


def network_state_to_dict(state: NetworkState) -> dict[str, Any]:
    """Create a dictionary describing the network state."""
    data: dict[str, Any] = {"connections": [connection_to_dict(c) for c in state.connections]}
    general = _plain(state.general)
    if general:
        data["general"] = general
    return data


def connection_to_yaml(connection: Connection) -> str:
    return yaml.safe_dump(connection_to_dict(connection), sort_keys=False)


def network_state_to_yaml(state: NetworkState) -> str:
    """Return YAML representation of a network state."""
    return yaml.safe_dump(network_state_to_dict(state), sort_keys=False)


def network_state_to_json(state: NetworkState) -> str:
    """Return JSON representation of a network state."""
    return json.dumps(network_state_to_dict(state), indent=2)


def write_network_state(path: Path, content: str) -> None:
    """Write content to the given path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
