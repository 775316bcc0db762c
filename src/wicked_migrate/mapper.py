"""Map raw wicked interfaces to NetworkManager-style connections."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field

from . import interface as raw
from .models import (
    ArpMon,
    BondConfig,
    BridgeConfig,
    BridgePortConfig,
    Connection,
    ConnectionConfig,
    DhcpSettings,
    DummyConfig,
    EthernetConfig,
    IpConfig,
    IpMethod,
    MappingError,
    Miimon,
    Route,
    VlanConfig,
)
from .netconfig import DhcpProtocolPolicy, NetconfigDhcpPolicy

BOND_MODES = {
    "balance-rr": "balance-rr",
    "active-backup": "active-backup",
    "balance-xor": "balance-xor",
    "broadcast": "broadcast",
    "802.3ad": "802.3ad",
    "ieee802-3ad": "802.3ad",
    "balance-tlb": "balance-tlb",
    "balance-alb": "balance-alb",
}
XMIT_HASH_POLICIES = {
    "layer2": "layer2",
    "layer2+3": "layer2+3",
    "layer23": "layer2+3",
    "layer3+4": "layer3+4",
    "layer34": "layer3+4",
    "encap2+3": "encap2+3",
    "encap23": "encap2+3",
    "encap3+4": "encap3+4",
    "encap34": "encap3+4",
    "vlan+srcmac": "vlan+srcmac",
}
FAIL_OVER_MAC = ("none", "active", "follow")
LACP_RATES = ("slow", "fast")
AD_SELECT = ("stable", "bandwidth", "count")
PRIMARY_RESELECT = ("always", "better", "failure")
ARP_VALIDATE = ("none", "active", "backup", "all", "filter", "filter_active", "filter_backup")
ARP_ALL_TARGETS = ("any", "all")
CARRIER_DETECT = ("ioctl", "netif")
VLAN_PROTOCOLS = {"ieee802-1Q": "802.1Q", "802.1Q": "802.1Q", "ieee802-1ad": "802.1ad", "802.1ad": "802.1ad"}
DEFAULT_ROUTES = {"0.0.0.0/0", "::/0", "default"}


@dataclass
class MappingResult:
    """Connections produced for one interface."""

    connections: list[Connection] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    # child connection id -> parent interface name
    parents: dict[str, str] = field(default_factory=dict)
    # ids of port connections synthesized from a controller's port list
    synthesized: set[str] = field(default_factory=set)


def _choice(ifc: str, option: str, value: str | None, allowed) -> str | None:
    """Validate an enumerated option, translating aliases when given a mapping."""
    if value is None:
        return None
    if value not in allowed:
        raise MappingError(ifc, f"invalid {option} '{value}'")
    if isinstance(allowed, dict):
        return allowed[value]
    return value


def _bond_config(ifc: str, bond: raw.Bond) -> BondConfig:
    miimon = None
    if bond.miimon is not None:
        miimon = Miimon(
            frequency=bond.miimon.frequency,
            carrier_detect=_choice(ifc, "carrier-detect", bond.miimon.carrier_detect, CARRIER_DETECT),
            updelay=bond.miimon.updelay,
            downdelay=bond.miimon.downdelay,
        )
    arpmon = None
    if bond.arpmon is not None:
        targets = bond.arpmon.targets.ipv4_address if bond.arpmon.targets else []
        for target in targets:
            try:
                ipaddress.IPv4Address(target)
            except ValueError as exc:
                raise MappingError(ifc, f"invalid arp target '{target}'") from exc
        arpmon = ArpMon(
            interval=bond.arpmon.interval,
            validate=_choice(ifc, "arp validate", bond.arpmon.validate_, ARP_VALIDATE),
            validate_targets=_choice(ifc, "arp validate-targets", bond.arpmon.validate_targets, ARP_ALL_TARGETS),
            targets=tuple(targets),
        )
    return BondConfig(
        mode=_choice(ifc, "bond mode", bond.mode, BOND_MODES),
        xmit_hash_policy=_choice(ifc, "xmit-hash-policy", bond.xmit_hash_policy, XMIT_HASH_POLICIES),
        fail_over_mac=_choice(ifc, "fail-over-mac", bond.fail_over_mac, FAIL_OVER_MAC),
        packets_per_slave=bond.packets_per_slave,
        tlb_dynamic_lb=bond.tlb_dynamic_lb,
        lacp_rate=_choice(ifc, "lacp-rate", bond.lacp_rate, LACP_RATES),
        ad_select=_choice(ifc, "ad-select", bond.ad_select, AD_SELECT),
        ad_user_port_key=bond.ad_user_port_key,
        ad_actor_sys_prio=bond.ad_actor_sys_prio,
        ad_actor_system=bond.ad_actor_system,
        min_links=bond.min_links,
        primary_reselect=_choice(ifc, "primary-reselect", bond.primary_reselect, PRIMARY_RESELECT),
        num_grat_arp=bond.num_grat_arp,
        num_unsol_na=bond.num_unsol_na,
        lp_interval=bond.lp_interval,
        resend_igmp=bond.resend_igmp,
        all_slaves_active=bond.all_slaves_active,
        miimon=miimon,
        arpmon=arpmon,
        address=bond.address,
        primary=bond.primary,
    )


def _bridge_config(bridge: raw.Bridge) -> BridgeConfig:
    return BridgeConfig(
        stp=bridge.stp,
        priority=bridge.priority,
        forward_delay=bridge.forward_delay,
        hello_time=bridge.hello_time,
        max_age=bridge.max_age,
        ageing_time=bridge.aging_time,
    )


def _connection_config(ifc: raw.RawInterface) -> ConnectionConfig:
    """Pick the connection kind from the descriptor's type block."""
    kinds = [name for name in ("bond", "bridge", "vlan", "dummy") if getattr(ifc, name) is not None]
    if len(kinds) > 1:
        raise MappingError(ifc.name, f"conflicting interface kinds: {', '.join(kinds)}")
    if ifc.bond is not None:
        return _bond_config(ifc.name, ifc.bond)
    if ifc.bridge is not None:
        return _bridge_config(ifc.bridge)
    if ifc.vlan is not None:
        protocol = _choice(ifc.name, "vlan protocol", ifc.vlan.protocol or "802.1Q", VLAN_PROTOCOLS)
        return VlanConfig(parent=ifc.vlan.device, id=ifc.vlan.tag, protocol=protocol)
    if ifc.dummy is not None:
        return DummyConfig()
    if ifc.ethernet is not None:
        return EthernetConfig(
            auto_negotiate=ifc.ethernet.autonegotiation,
            speed=ifc.ethernet.link_speed,
            duplex=ifc.ethernet.duplex,
        )
    return EthernetConfig()


def _validate_addresses(ifc: str, addresses: list[str], version: int) -> list[str]:
    validated = []
    for address in addresses:
        try:
            parsed = ipaddress.ip_interface(address)
        except ValueError as exc:
            raise MappingError(ifc, f"invalid address '{address}'") from exc
        if parsed.version != version:
            raise MappingError(ifc, f"address '{address}' is not an IPv{version} address")
        validated.append(parsed.with_prefixlen)
    return validated


def _apply_routes(ifc: str, block: raw.StaticConfig | None, version: int, ip_config: IpConfig, warnings: list[str]):
    if block is None:
        return
    for route in block.route:
        gateway = route.nexthop[0].gateway if route.nexthop else None
        if len(route.nexthop) > 1:
            warnings.append(
                f"Interface {ifc}: multipath route to {route.destination or 'default'} reduced to first nexthop"
            )
        destination = route.destination or "default"
        if destination in DEFAULT_ROUTES:
            if gateway is None:
                warnings.append(f"Interface {ifc}: default route without gateway ignored")
            elif version == 4:
                ip_config.gateway4 = gateway
            else:
                ip_config.gateway6 = gateway
            continue
        try:
            ipaddress.ip_network(destination, strict=False)
        except ValueError as exc:
            raise MappingError(ifc, f"invalid route destination '{destination}'") from exc
        ip_config.routes.append(Route(destination=destination, gateway=gateway, metric=route.priority))


def _dhcp_settings(
    policy: DhcpProtocolPolicy | None,
    hostname: str | None,
    client_id: str | None = None,
    route_metric: int | None = None,
) -> DhcpSettings:
    """Merge per-interface DHCP values over the netconfig DHCP policy."""
    settings = DhcpSettings()
    if policy is not None:
        send = policy.send_hostname()
        if send is not None:
            settings.send_hostname = send
        settings.hostname = policy.hostname()
        settings.client_id = policy.client_id
        settings.route_metric = policy.route_priority
    if hostname:
        settings.send_hostname = True
        settings.hostname = hostname
    if client_id:
        settings.client_id = client_id
    if route_metric is not None:
        settings.route_metric = route_metric
    return settings


def _ipv4_method(ifc: raw.RawInterface, addresses: list[str]) -> IpMethod:
    dhcp = ifc.ipv4_dhcp is not None and ifc.ipv4_dhcp.enabled
    if not ifc.ipv4.enabled:
        if dhcp or addresses:
            raise MappingError(ifc.name, "IPv4 is disabled but addresses or DHCP are configured")
        return IpMethod.DISABLED
    if dhcp:
        return IpMethod.AUTO
    if addresses:
        return IpMethod.MANUAL
    return IpMethod.DISABLED


def _ipv6_method(ifc: raw.RawInterface, addresses: list[str]) -> IpMethod:
    auto = any(block is not None and block.enabled for block in (ifc.ipv6_dhcp, ifc.ipv6_auto))
    if not ifc.ipv6.enabled:
        if auto or addresses:
            raise MappingError(ifc.name, "IPv6 is disabled but addresses or autoconfiguration are configured")
        return IpMethod.DISABLED
    if auto:
        return IpMethod.AUTO
    if addresses:
        return IpMethod.MANUAL
    return IpMethod.DISABLED


def _ip_config(ifc: raw.RawInterface, dhcp_policy: NetconfigDhcpPolicy | None, warnings: list[str]) -> IpConfig:
    addresses4 = _validate_addresses(ifc.name, ifc.static_addresses(4), 4)
    addresses6 = _validate_addresses(ifc.name, ifc.static_addresses(6), 6)
    ip_config = IpConfig(
        method4=_ipv4_method(ifc, addresses4),
        method6=_ipv6_method(ifc, addresses6),
        addresses=addresses4 + addresses6,
    )
    _apply_routes(ifc.name, ifc.ipv4_static, 4, ip_config, warnings)
    _apply_routes(ifc.name, ifc.ipv6_static, 6, ip_config, warnings)

    if ip_config.method4 == IpMethod.AUTO:
        dhcp4 = ifc.ipv4_dhcp
        ip_config.dhcp4 = _dhcp_settings(
            dhcp_policy.v4 if dhcp_policy else None,
            dhcp4.hostname,
            client_id=dhcp4.client_id,
            route_metric=dhcp4.route_priority,
        )
    if ip_config.method6 == IpMethod.AUTO:
        hostname = ifc.ipv6_dhcp.hostname if ifc.ipv6_dhcp else None
        ip_config.dhcp6 = _dhcp_settings(dhcp_policy.v6 if dhcp_policy else None, hostname)
        if ifc.ipv6_dhcp is not None and ifc.ipv6_dhcp.mode not in (None, "auto", "managed", "info"):
            warnings.append(f"Interface {ifc.name}: unsupported DHCPv6 mode '{ifc.ipv6_dhcp.mode}'")
    if ifc.ipv6.privacy not in (None, "disable", "prefer-public", "prefer-temporary"):
        warnings.append(f"Interface {ifc.name}: unsupported IPv6 privacy '{ifc.ipv6.privacy}'")
    return ip_config


def _port_ip_config(ifc: raw.RawInterface, ip_config: IpConfig, warnings: list[str]) -> IpConfig:
    """Ports carry no IP configuration of their own."""
    if ip_config.method4.is_configured() or ip_config.method6.is_configured():
        warnings.append(f"Interface {ifc.name}: IP configuration ignored on port of {ifc.link.master}")
    return IpConfig(method4=IpMethod.NONE, method6=IpMethod.NONE)


def _synthesized_ports(ifc: raw.RawInterface, result: MappingResult) -> None:
    """Emit port connections listed inside a bond or bridge descriptor."""
    if ifc.bond is not None and ifc.bond.slaves is not None:
        ports = [(slave.device, None) for slave in ifc.bond.slaves.slave]
    elif ifc.bridge is not None and ifc.bridge.ports is not None:
        ports = [
            (port.device, BridgePortConfig(priority=port.priority, path_cost=port.path_cost))
            for port in ifc.bridge.ports.port
        ]
    else:
        return
    for device, port_config in ports:
        port = Connection(
            id=device,
            interface=device,
            port_config=port_config,
            ip_config=IpConfig(method4=IpMethod.NONE, method6=IpMethod.NONE),
        )
        result.connections.append(port)
        result.parents[port.id] = ifc.name
        result.synthesized.add(port.id)


def map_interface(ifc: raw.RawInterface, dhcp_policy: NetconfigDhcpPolicy | None = None) -> MappingResult:
    """Convert one raw interface into connections and non-fatal warnings."""
    result = MappingResult()
    for path in ifc.unhandled_fields:
        result.warnings.append(f"Unhandled field in interface {ifc.name}: {path}")

    config = _connection_config(ifc)
    ip_config = _ip_config(ifc, dhcp_policy, result.warnings)
    if ifc.link.master:
        ip_config = _port_ip_config(ifc, ip_config, result.warnings)
    connection = Connection(
        id=ifc.name,
        interface=ifc.name,
        config=config,
        ip_config=ip_config,
        firewall_zone=ifc.firewall.zone,
        mtu=ifc.link.mtu,
        autoconnect=ifc.control.mode not in ("off", "manual"),
    )
    result.connections.append(connection)
    if ifc.link.master:
        result.parents[connection.id] = ifc.link.master
    _synthesized_ports(ifc, result)
    return result
