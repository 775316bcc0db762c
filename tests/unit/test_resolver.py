"""Tests for controller resolution and state assembly."""
from __future__ import annotations

import pytest

from wicked_migrate.assembler import assemble_state
from wicked_migrate.models import (
    BondConfig,
    Connection,
    DuplicateConnectionError,
    MigrationAborted,
    ResolutionError,
    StructuralError,
)
from wicked_migrate.resolver import resolve_controllers


def _connections():
    bond = Connection(id="bond0", interface="bond0", config=BondConfig(mode="active-backup"))
    eth0 = Connection(id="eth0", interface="eth0")
    eth1 = Connection(id="eth1", interface="eth1")
    return bond, eth0, eth1


@pytest.mark.unit
class TestResolveControllers:
    def test_children_point_at_parent_uuid(self):
        bond, eth0, eth1 = _connections()
        # ports first: resolution must not depend on mapping order
        connections = [eth0, eth1, bond]

        warnings = resolve_controllers(connections, {"eth0": "bond0", "eth1": "bond0"})

        assert warnings == []
        assert eth0.controller == bond.uuid
        assert eth1.controller == bond.uuid
        assert bond.controller is None

    def test_missing_parent_aborts_in_strict_mode(self):
        bond, eth0, _ = _connections()

        with pytest.raises(MigrationAborted, match="Missing parent br9 connection for eth0"):
            resolve_controllers([bond, eth0], {"eth0": "br9"})
        assert eth0.controller is None

    def test_missing_parent_is_a_warning_when_continuing(self):
        bond, eth0, eth1 = _connections()

        warnings = resolve_controllers([bond, eth0, eth1], {"eth0": "br9", "eth1": "bond0"}, continue_migration=True)

        assert warnings == ["Missing parent br9 connection for eth0"]
        assert eth0.controller is None
        assert eth1.controller == bond.uuid

    def test_vanished_child_is_structural(self):
        bond, _, _ = _connections()

        with pytest.raises(ResolutionError, match="missing connection ghost"):
            resolve_controllers([bond], {"ghost": "bond0"}, continue_migration=True)


@pytest.mark.unit
class TestAssembleState:
    def test_connections_keep_their_order(self):
        bond, eth0, eth1 = _connections()

        state = assemble_state([bond, eth0, eth1])

        assert [c.id for c in state.connections] == ["bond0", "eth0", "eth1"]
        assert state.get_connection_by_interface("eth1") is eth1

    def test_duplicate_id_is_rejected(self):
        with pytest.raises(DuplicateConnectionError, match="eth0"):
            assemble_state([Connection(id="eth0"), Connection(id="eth0")])

    def test_duplicate_uuid_is_rejected(self):
        first = Connection(id="eth0")
        second = Connection(id="eth1", uuid=first.uuid)

        with pytest.raises(StructuralError):
            assemble_state([first, second])
