"""Tests for the NetworkManager keyfile adapter."""
from __future__ import annotations

import stat

import pytest

from wicked_migrate.adapter import KeyfileAdapter, keyfile_name, parse_keyfile
from wicked_migrate.assembler import assemble_state
from wicked_migrate.config import PACKAGED_TEMPLATES_DIR
from wicked_migrate.dns_policy import create_loopback_connection
from wicked_migrate.models import (
    AdapterError,
    BondConfig,
    BridgeConfig,
    BridgePortConfig,
    Connection,
    IpConfig,
    IpMethod,
    LoopbackConfig,
    Miimon,
    StateConfig,
)


@pytest.fixture
def adapter(tmp_path) -> KeyfileAdapter:
    return KeyfileAdapter(tmp_path / "system-connections", PACKAGED_TEMPLATES_DIR)


def _bond_state():
    bond = Connection(
        id="bond0",
        interface="bond0",
        config=BondConfig(mode="802.3ad", xmit_hash_policy="layer3+4", miimon=Miimon(frequency=100)),
        ip_config=IpConfig(method4=IpMethod.MANUAL, addresses=["10.0.0.2/24"], gateway4="10.0.0.1"),
    )
    port = Connection(
        id="eth0",
        interface="eth0",
        ip_config=IpConfig(method4=IpMethod.NONE, method6=IpMethod.NONE),
        controller=bond.uuid,
    )
    return assemble_state([bond, port]), bond, port


@pytest.mark.unit
class TestRender:
    def test_bond_keyfile(self, adapter):
        state, bond, _ = _bond_state()

        text = adapter.render(state)[0].text

        assert "[connection]\nid=bond0\n" in text
        assert f"uuid={bond.uuid}\n" in text
        assert "type=bond\n" in text
        assert "[bond]\nmode=802.3ad\n" in text
        assert "xmit_hash_policy=layer3+4\n" in text
        assert "miimon=100\n" in text
        assert "[ipv4]\nmethod=manual\naddress1=10.0.0.2/24\ngateway=10.0.0.1\n" in text

    def test_port_references_controller(self, adapter):
        state, bond, _ = _bond_state()

        text = adapter.render(state)[1].text

        assert f"controller={bond.uuid}\n" in text
        assert "port-type=bond\n" in text
        assert "[ipv4]" not in text
        assert "[ipv6]" not in text

    def test_bridge_port_section(self, adapter):
        bridge = Connection(id="br0", interface="br0", config=BridgeConfig())
        port = Connection(
            id="eth1",
            interface="eth1",
            ip_config=IpConfig(method4=IpMethod.NONE, method6=IpMethod.NONE),
            controller=bridge.uuid,
            port_config=BridgePortConfig(priority=3),
        )

        text = adapter.render(assemble_state([bridge, port]))[1].text

        assert "[bridge-port]\npriority=3\n" in text
        assert "path-cost" not in text

    def test_unsafe_characters_in_file_name(self):
        assert keyfile_name(Connection(id="eth0/ vlan")) == "eth0__vlan.nmconnection"

    def test_missing_template(self, tmp_path):
        adapter = KeyfileAdapter(tmp_path, tmp_path / "nothing-here")

        with pytest.raises(AdapterError, match="Failed to render"):
            adapter.render(assemble_state([Connection(id="eth0")]))


@pytest.mark.unit
class TestWriteAndRead:
    def test_written_files_are_private(self, adapter):
        state, _, _ = _bond_state()

        adapter.write(state)

        for name in ("bond0.nmconnection", "eth0.nmconnection"):
            mode = (adapter.keyfile_dir / name).stat().st_mode
            assert stat.S_IMODE(mode) == 0o600
        assert not list(adapter.keyfile_dir.glob(".*.tmp"))

    def test_loopback_survives_round_trip(self, adapter):
        loopback = create_loopback_connection()
        loopback.ip_config.nameservers = ["10.0.0.53", "2001:db8::53"]
        loopback.ip_config.dns_searchlist = ["corp.example"]
        adapter.write(assemble_state([loopback]))

        current = adapter.read(StateConfig())

        read_back = current.loopback()
        assert read_back.uuid == loopback.uuid
        assert isinstance(read_back.config, LoopbackConfig)
        assert read_back.ip_config.method4 == IpMethod.MANUAL
        assert read_back.ip_config.addresses == ["127.0.0.1/8", "::1/128"]
        assert read_back.ip_config.nameservers == ["10.0.0.53", "2001:db8::53"]
        assert read_back.ip_config.dns_searchlist == ["corp.example"]

    def test_missing_directory_reads_as_empty(self, adapter):
        assert adapter.read(StateConfig()).connections == []

    def test_connections_not_requested(self, adapter):
        adapter.write(assemble_state([create_loopback_connection()]))

        assert adapter.read(StateConfig(connections=False)).connections == []

    def test_unsupported_type_is_skipped(self, tmp_path):
        path = tmp_path / "wifi.nmconnection"
        path.write_text("[connection]\nid=home\nuuid=6e0f1c42-0d5f-4cb4-9f62-7d7a4c4a2f10\ntype=wifi\n", encoding="utf-8")

        assert parse_keyfile(path) is None

    def test_broken_keyfile(self, tmp_path):
        path = tmp_path / "broken.nmconnection"
        path.write_text("[connection]\nid=eth0\nuuid=not-a-uuid\ntype=ethernet\n", encoding="utf-8")

        with pytest.raises(AdapterError, match="broken.nmconnection"):
            parse_keyfile(path)


@pytest.mark.unit
class TestWriteIsAllOrNothing:
    def _state(self):
        return assemble_state([Connection(id="a", interface="a"), Connection(id="b", interface="b")])

    def test_failure_leaves_no_new_files(self, adapter):
        adapter.keyfile_dir.mkdir(parents=True)
        (adapter.keyfile_dir / "b.nmconnection").mkdir()

        with pytest.raises(AdapterError):
            adapter.write(self._state())

        assert sorted(path.name for path in adapter.keyfile_dir.iterdir()) == ["b.nmconnection"]

    def test_failure_restores_replaced_files(self, adapter):
        adapter.keyfile_dir.mkdir(parents=True)
        existing = adapter.keyfile_dir / "a.nmconnection"
        existing.write_text("[connection]\nid=old\n", encoding="utf-8")
        (adapter.keyfile_dir / "b.nmconnection").mkdir()

        with pytest.raises(AdapterError):
            adapter.write(self._state())

        assert existing.read_text(encoding="utf-8") == "[connection]\nid=old\n"
        assert not list(adapter.keyfile_dir.glob(".*.tmp"))

    def test_leftover_staging_file_does_not_widen_mode(self, adapter):
        adapter.keyfile_dir.mkdir(parents=True)
        leftover = adapter.keyfile_dir / ".a.nmconnection.tmp"
        leftover.write_text("stale", encoding="utf-8")
        leftover.chmod(0o644)

        adapter.write(self._state())

        mode = (adapter.keyfile_dir / "a.nmconnection").stat().st_mode
        assert stat.S_IMODE(mode) == 0o600
        assert "id=a\n" in (adapter.keyfile_dir / "a.nmconnection").read_text(encoding="utf-8")
