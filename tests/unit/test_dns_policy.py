"""Tests for merging the static DNS policy."""
from __future__ import annotations

import pytest

from wicked_migrate.assembler import assemble_state
from wicked_migrate.dns_policy import GlobDnsMatcher, create_loopback_connection, merge_dns_policy
from wicked_migrate.models import Connection, IpConfig, IpMethod, LoopbackConfig, MigrationAborted
from wicked_migrate.netconfig import DnsMatchRule, NetconfigPolicy


def _state():
    return assemble_state(
        [
            Connection(id="eth0", interface="eth0", ip_config=IpConfig(method4=IpMethod.AUTO, method6=IpMethod.AUTO)),
            Connection(id="eth1", interface="eth1", ip_config=IpConfig(method4=IpMethod.MANUAL)),
            Connection(id="br0", interface="br0", ip_config=IpConfig(method4=IpMethod.AUTO)),
        ]
    )


@pytest.mark.unit
class TestLoopback:
    def test_synthesized_loopback(self):
        state = _state()
        netconfig = NetconfigPolicy(NETCONFIG_DNS_STATIC_SERVERS="10.0.0.53", NETCONFIG_DNS_STATIC_SEARCHLIST="corp")

        merge_dns_policy(netconfig, state)

        loopbacks = [c for c in state.connections if c.is_loopback()]
        assert len(loopbacks) == 1
        loopback = loopbacks[0]
        assert loopback.id == "lo"
        assert loopback.ip_config.method4 == IpMethod.MANUAL
        assert loopback.ip_config.method6 == IpMethod.MANUAL
        assert loopback.ip_config.addresses == ["127.0.0.1/8", "::1/128"]
        assert loopback.ip_config.nameservers == ["10.0.0.53"]
        assert loopback.ip_config.dns_searchlist == ["corp"]
        assert loopback.ip_config.ignore_auto_dns is False

    def test_existing_loopback_is_cloned(self):
        state = _state()
        current = create_loopback_connection()
        current.mtu = 65536

        merge_dns_policy(NetconfigPolicy(NETCONFIG_DNS_STATIC_SERVERS="1.1.1.1"), state, current_loopback=current)

        loopback = state.loopback()
        assert loopback is not current
        assert loopback.uuid == current.uuid
        assert loopback.mtu == 65536
        assert loopback.ip_config.nameservers == ["1.1.1.1"]
        assert current.ip_config.nameservers == []

    def test_searchlist_left_alone_when_unset(self):
        state = _state()
        current = create_loopback_connection()
        current.ip_config.dns_searchlist = ["keep.me"]

        merge_dns_policy(NetconfigPolicy(), state, current_loopback=current)

        assert state.loopback().ip_config.dns_searchlist == ["keep.me"]

    def test_bad_nameserver_aborts_in_strict_mode(self):
        with pytest.raises(MigrationAborted, match="static DNS servers"):
            merge_dns_policy(NetconfigPolicy(NETCONFIG_DNS_STATIC_SERVERS="1.1.1.1 bogus"), _state())

    def test_bad_nameserver_degrades_to_empty_list(self):
        state = _state()

        warnings = merge_dns_policy(
            NetconfigPolicy(NETCONFIG_DNS_STATIC_SERVERS="1.1.1.1 bogus"), state, continue_migration=True
        )

        assert len(warnings) == 1
        assert state.loopback().ip_config.nameservers == []


@pytest.mark.unit
class TestIgnoreAutoDns:
    def test_unclaimed_connections_ignore_auto_dns(self):
        state = _state()

        merge_dns_policy(NetconfigPolicy(NETCONFIG_DNS_POLICY="auto"), state)

        for connection in state.connections:
            if isinstance(connection.config, LoopbackConfig):
                assert connection.ip_config.ignore_auto_dns is False
            else:
                assert connection.ip_config.ignore_auto_dns is True

    def test_matching_connections_receive_priority(self):
        state = _state()

        merge_dns_policy(NetconfigPolicy(NETCONFIG_DNS_POLICY="STATIC eth0 eth*"), state)

        eth0 = state.get_connection("eth0")
        eth1 = state.get_connection("eth1")
        br0 = state.get_connection("br0")
        assert (eth0.ip_config.dns_priority4, eth0.ip_config.dns_priority6) == (10, 10)
        assert (eth1.ip_config.dns_priority4, eth1.ip_config.dns_priority6) == (20, None)
        assert eth0.ip_config.ignore_auto_dns is False
        assert eth1.ip_config.ignore_auto_dns is False
        assert br0.ip_config.dns_priority4 is None
        assert br0.ip_config.ignore_auto_dns is True

    def test_match_without_configured_family_does_not_count(self):
        state = assemble_state([Connection(id="eth5", interface="eth5")])

        merge_dns_policy(NetconfigPolicy(NETCONFIG_DNS_POLICY="eth*"), state)

        assert state.get_connection("eth5").ip_config.ignore_auto_dns is True

    def test_custom_matcher(self):
        class OnlyBridges:
            def match(self, connection):
                return 5 if connection.id.startswith("br") else None

        state = _state()

        merge_dns_policy(NetconfigPolicy(), state, matcher=OnlyBridges())

        assert state.get_connection("br0").ip_config.dns_priority4 == 5
        assert state.get_connection("eth0").ip_config.ignore_auto_dns is True


@pytest.mark.unit
class TestGlobDnsMatcher:
    def test_lowest_priority_number_wins(self):
        matcher = GlobDnsMatcher([DnsMatchRule(pattern="eth*", priority=20), DnsMatchRule(pattern="eth0", priority=10)])

        assert matcher.match(Connection(id="eth0", interface="eth0")) == 10
        assert matcher.match(Connection(id="eth1", interface="eth1")) == 20
        assert matcher.match(Connection(id="wlan0", interface="wlan0")) is None
