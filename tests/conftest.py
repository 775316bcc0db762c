from __future__ import annotations

import textwrap

import pytest

from wicked_migrate.config import MigrationSettings
from wicked_migrate.models import NetworkState, StateConfig

BOND_XML = textwrap.dedent(
    """
    <interface>
        <name>bond0</name>
        <bond>
            <mode>active-backup</mode>
            <xmit-hash-policy>layer3+4</xmit-hash-policy>
            <fail-over-mac>none</fail-over-mac>
            <packets-per-slave>1</packets-per-slave>
            <tlb-dynamic-lb>true</tlb-dynamic-lb>
            <lacp-rate>slow</lacp-rate>
            <ad-select>bandwidth</ad-select>
            <ad-user-port-key>5</ad-user-port-key>
            <ad-actor-sys-prio>7</ad-actor-sys-prio>
            <ad-actor-system>00:de:ad:be:ef:00</ad-actor-system>
            <min-links>11</min-links>
            <primary-reselect>better</primary-reselect>
            <num-grat-arp>13</num-grat-arp>
            <num-unsol-na>17</num-unsol-na>
            <lp-interval>19</lp-interval>
            <resend-igmp>23</resend-igmp>
            <all-slaves-active>true</all-slaves-active>
            <miimon>
                <frequency>23</frequency>
                <updelay>27</updelay>
                <downdelay>31</downdelay>
                <carrier-detect>ioctl</carrier-detect>
            </miimon>
            <arpmon>
                <interval>23</interval>
                <validate>filter_backup</validate>
                <validate-targets>any</validate-targets>
                <targets>
                    <ipv4-address>1.2.3.4</ipv4-address>
                    <ipv4-address>4.3.2.1</ipv4-address>
                </targets>
            </arpmon>
            <address>02:11:22:33:44:55</address>
            <primary>en0</primary>
        </bond>
        <ipv4:static>
            <address>
                <local>192.168.10.5/24</local>
            </address>
            <route>
                <nexthop>
                    <gateway>192.168.10.1</gateway>
                </nexthop>
            </route>
        </ipv4:static>
    </interface>
    """
)

PORT_XML = textwrap.dedent(
    """
    <interface>
        <name>{name}</name>
        <link>
            <master>{master}</master>
        </link>
    </interface>
    """
)

DHCP_XML = textwrap.dedent(
    """
    <interface>
        <name>{name}</name>
        <ipv4:dhcp>
            <enabled>true</enabled>
        </ipv4:dhcp>
        <ipv6:auto>
            <enabled>true</enabled>
        </ipv6:auto>
    </interface>
    """
)


class FakeAdapter:
    """In-memory adapter recording every call."""

    def __init__(self, current: NetworkState | None = None):
        self.current = current or NetworkState()
        self.reads: list[StateConfig] = []
        self.written: list[NetworkState] = []

    def read(self, config: StateConfig) -> NetworkState:
        self.reads.append(config)
        return self.current

    def write(self, state: NetworkState) -> None:
        self.written.append(state)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def settings(tmp_path) -> MigrationSettings:
    return MigrationSettings(
        netconfig_path=tmp_path / "config",
        netconfig_dhcp_path=tmp_path / "dhcp",
        keyfile_dir=tmp_path / "system-connections",
    )


@pytest.fixture
def write_xml(tmp_path):
    """Write XML documents into tmp_path and return their paths."""

    def _write(name: str, *documents: str):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(documents), encoding="utf-8")
        return path

    return _write
