"""Pydantic schema for wicked interface descriptors."""

from __future__ import annotations

import typing
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class XmlModel(BaseModel):
    """Base schema for data converted from an XML element tree.

    XML cannot tell a single child from a one-element list, so values for
    list fields are wrapped before validation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _wrap_single_items(cls, data: Any) -> Any:
        if data == "":
            # presence-only element such as <dummy/>
            return {}
        if not isinstance(data, dict):
            return data
        wrapped = dict(data)
        for name, info in cls.model_fields.items():
            key = info.alias or name
            if key in wrapped and _is_list_annotation(info.annotation):
                value = wrapped[key]
                if not isinstance(value, list):
                    wrapped[key] = [] if value in (None, {}) else [value]
        return wrapped


def _is_list_annotation(annotation: Any) -> bool:
    origin = typing.get_origin(annotation)
    if origin in (list, tuple):
        return True
    return any(typing.get_origin(arg) in (list, tuple) for arg in typing.get_args(annotation))


class Control(XmlModel):
    mode: str | None = None


class Firewall(XmlModel):
    zone: str | None = None


class Link(XmlModel):
    master: str | None = None
    mtu: int | None = None


class Ipv4(XmlModel):
    enabled: bool = True


class Ipv6(XmlModel):
    enabled: bool = True
    privacy: str | None = None


class StaticAddress(XmlModel):
    local: str


class Nexthop(XmlModel):
    gateway: str | None = None


class StaticRoute(XmlModel):
    destination: str | None = None
    nexthop: list[Nexthop] = Field(default_factory=list)
    priority: int | None = None


class StaticConfig(XmlModel):
    """Addresses and routes of an ``ipv4:static``/``ipv6:static`` block."""

    address: list[StaticAddress] = Field(default_factory=list)
    route: list[StaticRoute] = Field(default_factory=list)


class Dhcp4(XmlModel):
    enabled: bool = False
    hostname: str | None = None
    client_id: str | None = Field(default=None, alias="client-id")
    route_priority: int | None = Field(default=None, alias="route-priority")


class Dhcp6(XmlModel):
    enabled: bool = False
    mode: str | None = None
    hostname: str | None = None


class Auto6(XmlModel):
    enabled: bool = False


class Ethernet(XmlModel):
    autonegotiation: bool | None = None
    link_speed: int | None = Field(default=None, alias="link-speed")
    duplex: str | None = None


class Miimon(XmlModel):
    frequency: int
    updelay: int | None = None
    downdelay: int | None = None
    carrier_detect: str = Field(default="netif", alias="carrier-detect")


class ArpTargets(XmlModel):
    ipv4_address: list[str] = Field(default_factory=list, alias="ipv4-address")


class ArpMon(XmlModel):
    interval: int
    validate_: str = Field(default="none", alias="validate")
    validate_targets: str | None = Field(default=None, alias="validate-targets")
    targets: ArpTargets | None = None


class BondSlave(XmlModel):
    device: str
    primary: bool | None = None


class BondSlaves(XmlModel):
    slave: list[BondSlave] = Field(default_factory=list)


class Bond(XmlModel):
    """Bonding parameters; enumerations stay raw strings until mapped."""

    mode: str
    xmit_hash_policy: str | None = Field(default=None, alias="xmit-hash-policy")
    fail_over_mac: str | None = Field(default=None, alias="fail-over-mac")
    packets_per_slave: int | None = Field(default=None, alias="packets-per-slave")
    tlb_dynamic_lb: bool | None = Field(default=None, alias="tlb-dynamic-lb")
    lacp_rate: str | None = Field(default=None, alias="lacp-rate")
    ad_select: str | None = Field(default=None, alias="ad-select")
    ad_user_port_key: int | None = Field(default=None, alias="ad-user-port-key")
    ad_actor_sys_prio: int | None = Field(default=None, alias="ad-actor-sys-prio")
    ad_actor_system: str | None = Field(default=None, alias="ad-actor-system")
    min_links: int | None = Field(default=None, alias="min-links")
    primary_reselect: str | None = Field(default=None, alias="primary-reselect")
    num_grat_arp: int | None = Field(default=None, alias="num-grat-arp")
    num_unsol_na: int | None = Field(default=None, alias="num-unsol-na")
    lp_interval: int | None = Field(default=None, alias="lp-interval")
    resend_igmp: int | None = Field(default=None, alias="resend-igmp")
    all_slaves_active: bool | None = Field(default=None, alias="all-slaves-active")
    miimon: Miimon | None = None
    arpmon: ArpMon | None = None
    address: str | None = None
    primary: str | None = None
    slaves: BondSlaves | None = None


class BridgePort(XmlModel):
    device: str
    priority: int | None = None
    path_cost: int | None = Field(default=None, alias="path-cost")


class BridgePorts(XmlModel):
    port: list[BridgePort] = Field(default_factory=list)


class Bridge(XmlModel):
    stp: bool = False
    priority: int | None = None
    forward_delay: float | None = Field(default=None, alias="forward-delay")
    hello_time: float | None = Field(default=None, alias="hello-time")
    max_age: float | None = Field(default=None, alias="max-age")
    aging_time: float | None = Field(default=None, alias="aging-time")
    ports: BridgePorts | None = None


class Vlan(XmlModel):
    device: str
    tag: int
    protocol: str | None = None


class Dummy(XmlModel):
    pass


class RawInterface(XmlModel):
    """One ``<interface>`` element of a wicked configuration document."""

    name: str
    control: Control = Field(default_factory=Control)
    firewall: Firewall = Field(default_factory=Firewall)
    link: Link = Field(default_factory=Link)
    ipv4: Ipv4 = Field(default_factory=Ipv4)
    ipv6: Ipv6 = Field(default_factory=Ipv6)
    ipv4_static: StaticConfig | None = Field(default=None, alias="ipv4-static")
    ipv6_static: StaticConfig | None = Field(default=None, alias="ipv6-static")
    ipv4_dhcp: Dhcp4 | None = Field(default=None, alias="ipv4-dhcp")
    ipv6_dhcp: Dhcp6 | None = Field(default=None, alias="ipv6-dhcp")
    ipv6_auto: Auto6 | None = Field(default=None, alias="ipv6-auto")
    ethernet: Ethernet | None = None
    bond: Bond | None = None
    bridge: Bridge | None = None
    vlan: Vlan | None = None
    dummy: Dummy | None = None
    unhandled_fields: tuple[str, ...] = Field(default=(), exclude=True)

    def static_addresses(self, version: int) -> list[str]:
        """Return the static CIDR addresses configured for an IP version."""
        block = self.ipv4_static if version == 4 else self.ipv6_static
        if block is None:
            return []
        return [address.local for address in block.address]


def iter_schema_children(model: type[BaseModel]) -> dict[str, type[BaseModel] | None]:
    """Return the XML element names a schema consumes.

    Each key maps to the nested schema used to validate that element, or
    ``None`` for leaf values.
    """
    children: dict[str, type[BaseModel] | None] = {}
    for name, info in model.model_fields.items():
        if name == "unhandled_fields":
            continue
        children[info.alias or name] = _nested_model(info.annotation)
    return children


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in typing.get_args(annotation):
        nested = _nested_model(arg)
        if nested is not None:
            return nested
    return None
