"""Core data models used by wicked-migrate."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union
from uuid import UUID, uuid4

LOOPBACK_NAME = "lo"


class IpMethod(str, Enum):
    """Addressing method for one IP family."""

    NONE = "none"
    DISABLED = "disabled"
    AUTO = "auto"
    MANUAL = "manual"

    def is_configured(self) -> bool:
        """Return True when the family carries an active configuration."""
        return self in (IpMethod.AUTO, IpMethod.MANUAL)


@dataclass
class Route:
    """A static route attached to a connection."""

    destination: str
    gateway: str | None = None
    metric: int | None = None


@dataclass
class DhcpSettings:
    """DHCP client behaviour for one IP family."""

    send_hostname: bool = True
    hostname: str | None = None
    client_id: str | None = None
    route_metric: int | None = None


@dataclass
class IpConfig:
    """IPv4/IPv6 configuration of a connection."""

    method4: IpMethod = IpMethod.DISABLED
    method6: IpMethod = IpMethod.DISABLED
    addresses: list[str] = field(default_factory=list)
    gateway4: str | None = None
    gateway6: str | None = None
    routes: list[Route] = field(default_factory=list)
    nameservers: list[str] = field(default_factory=list)
    dns_searchlist: list[str] = field(default_factory=list)
    dns_priority4: int | None = None
    dns_priority6: int | None = None
    ignore_auto_dns: bool = False
    dhcp4: DhcpSettings | None = None
    dhcp6: DhcpSettings | None = None

    def addresses_for(self, version: int) -> list[str]:
        """Return the CIDR addresses of the given IP version."""
        return [
            address
            for address in self.addresses
            if ipaddress.ip_interface(address).version == version
        ]

    def has_dns_priority(self) -> bool:
        """Return True when any protocol received a DNS priority."""
        return self.dns_priority4 is not None or self.dns_priority6 is not None


@dataclass
class MatchConfig:
    """Device matching predicate; empty means match by interface name."""

    interface_names: list[str] = field(default_factory=list)
    mac_addresses: list[str] = field(default_factory=list)

    def is_default(self) -> bool:
        return not (self.interface_names or self.mac_addresses)


@dataclass
class EthernetConfig:
    kind: Literal["ethernet"] = "ethernet"
    auto_negotiate: bool | None = None
    speed: int | None = None
    duplex: str | None = None


@dataclass(frozen=True)
class Miimon:
    """MII link monitoring parameters."""

    frequency: int
    carrier_detect: str = "netif"
    updelay: int | None = None
    downdelay: int | None = None


@dataclass(frozen=True)
class ArpMon:
    """ARP link monitoring parameters."""

    interval: int
    validate: str = "none"
    validate_targets: str | None = None
    targets: tuple[str, ...] = ()


@dataclass
class BondConfig:
    """Bonding parameters, every value already validated."""

    mode: str
    kind: Literal["bond"] = "bond"
    xmit_hash_policy: str | None = None
    fail_over_mac: str | None = None
    packets_per_slave: int | None = None
    tlb_dynamic_lb: bool | None = None
    lacp_rate: str | None = None
    ad_select: str | None = None
    ad_user_port_key: int | None = None
    ad_actor_sys_prio: int | None = None
    ad_actor_system: str | None = None
    min_links: int | None = None
    primary_reselect: str | None = None
    num_grat_arp: int | None = None
    num_unsol_na: int | None = None
    lp_interval: int | None = None
    resend_igmp: int | None = None
    all_slaves_active: bool | None = None
    miimon: Miimon | None = None
    arpmon: ArpMon | None = None
    address: str | None = None
    primary: str | None = None

    def options(self) -> dict[str, str]:
        """Return the kernel bonding options in NetworkManager notation."""
        opts: dict[str, str] = {"mode": self.mode}
        scalars = {
            "xmit_hash_policy": self.xmit_hash_policy,
            "fail_over_mac": self.fail_over_mac,
            "packets_per_slave": self.packets_per_slave,
            "tlb_dynamic_lb": self.tlb_dynamic_lb,
            "lacp_rate": self.lacp_rate,
            "ad_select": self.ad_select,
            "ad_user_port_key": self.ad_user_port_key,
            "ad_actor_sys_prio": self.ad_actor_sys_prio,
            "ad_actor_system": self.ad_actor_system,
            "min_links": self.min_links,
            "primary_reselect": self.primary_reselect,
            "num_grat_arp": self.num_grat_arp,
            "num_unsol_na": self.num_unsol_na,
            "lp_interval": self.lp_interval,
            "resend_igmp": self.resend_igmp,
            "all_slaves_active": self.all_slaves_active,
            "primary": self.primary,
        }
        for key, value in scalars.items():
            if value is None:
                continue
            opts[key] = str(int(value)) if isinstance(value, bool) else str(value)
        if self.miimon is not None:
            opts["miimon"] = str(self.miimon.frequency)
            opts["use_carrier"] = "1" if self.miimon.carrier_detect == "netif" else "0"
            if self.miimon.updelay is not None:
                opts["updelay"] = str(self.miimon.updelay)
            if self.miimon.downdelay is not None:
                opts["downdelay"] = str(self.miimon.downdelay)
        if self.arpmon is not None:
            opts["arp_interval"] = str(self.arpmon.interval)
            opts["arp_validate"] = self.arpmon.validate
            if self.arpmon.validate_targets is not None:
                opts["arp_all_targets"] = self.arpmon.validate_targets
            if self.arpmon.targets:
                opts["arp_ip_target"] = ",".join(self.arpmon.targets)
        return opts


@dataclass
class BridgeConfig:
    """Bridge parameters; legacy bridges default to STP disabled."""

    kind: Literal["bridge"] = "bridge"
    stp: bool = False
    priority: int | None = None
    forward_delay: float | None = None
    hello_time: float | None = None
    max_age: float | None = None
    ageing_time: float | None = None


@dataclass
class BridgePortConfig:
    """Per-port bridge settings."""

    priority: int | None = None
    path_cost: int | None = None


@dataclass
class VlanConfig:
    parent: str
    id: int
    kind: Literal["vlan"] = "vlan"
    protocol: str = "802.1Q"


@dataclass
class DummyConfig:
    kind: Literal["dummy"] = "dummy"


@dataclass
class LoopbackConfig:
    kind: Literal["loopback"] = "loopback"


ConnectionConfig = Union[
    EthernetConfig,
    BondConfig,
    BridgeConfig,
    VlanConfig,
    DummyConfig,
    LoopbackConfig,
]


@dataclass
class Connection:
    """A normalised network connection profile."""

    id: str
    config: ConnectionConfig = field(default_factory=EthernetConfig)
    uuid: UUID = field(default_factory=uuid4)
    interface: str | None = None
    controller: UUID | None = None
    ip_config: IpConfig = field(default_factory=IpConfig)
    match_config: MatchConfig = field(default_factory=MatchConfig)
    firewall_zone: str | None = None
    mtu: int | None = None
    autoconnect: bool = True
    port_config: BridgePortConfig | None = None

    def is_loopback(self) -> bool:
        return isinstance(self.config, LoopbackConfig)


@dataclass
class GeneralState:
    """Global network settings; carried through untouched."""

    hostname: str | None = None


@dataclass(frozen=True)
class StateConfig:
    """Selects which parts of the live state an adapter should read."""

    connections: bool = True
    general: bool = True


@dataclass
class NetworkState:
    """Ordered collection of connections with unique ids and uuids."""

    general: GeneralState = field(default_factory=GeneralState)
    connections: list[Connection] = field(default_factory=list)

    def get_connection(self, connection_id: str) -> Connection | None:
        """Return the connection with the given id."""
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        return None

    def get_connection_by_interface(self, name: str) -> Connection | None:
        """Return the first connection bound to the given interface name."""
        for connection in self.connections:
            if connection.interface == name:
                return connection
        return None

    def loopback(self) -> Connection | None:
        """Return the loopback connection if present."""
        for connection in self.connections:
            if connection.is_loopback():
                return connection
        return self.get_connection(LOOPBACK_NAME)

    def add_connection(self, connection: Connection) -> None:
        """Append a connection, rejecting duplicate ids and uuids."""
        for existing in self.connections:
            if existing.id == connection.id:
                raise DuplicateConnectionError(f"Connection '{connection.id}' already exists")
            if existing.uuid == connection.uuid:
                raise DuplicateConnectionError(
                    f"Connection '{connection.id}' reuses uuid {connection.uuid} of '{existing.id}'"
                )
        self.connections.append(connection)


class MigrationError(Exception):
    """Base exception for wicked-migrate."""


class MigrationAborted(MigrationError):
    """Raised when warnings occur and continuing was not requested."""


class MappingError(MigrationError):
    """Raised when an interface descriptor cannot be mapped."""

    def __init__(self, interface: str, message: str):
        super().__init__(f"Interface {interface}: {message}")
        self.interface = interface


class StructuralError(MigrationError):
    """Raised on internal contradictions; never recoverable."""


class DuplicateConnectionError(StructuralError):
    """Raised when two connections share an id or uuid."""


class ResolutionError(StructuralError):
    """Raised when a resolved controller points at a vanished connection."""


class DocumentError(MigrationError):
    """Base class for input document failures."""


class DocumentReadError(DocumentError):
    """Raised when an input document cannot be read."""


class DocumentParseError(DocumentError):
    """Raised when an input document is malformed."""


class AdapterError(MigrationError):
    """Raised when reading or writing the live system fails."""
