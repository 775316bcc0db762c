"""NetworkManager keyfile adapter: read the live state and write the result."""

from __future__ import annotations

import configparser
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from .config import MigrationSettings
from .models import (
    AdapterError,
    BondConfig,
    BridgeConfig,
    Connection,
    DhcpSettings,
    DummyConfig,
    EthernetConfig,
    IpConfig,
    IpMethod,
    LoopbackConfig,
    NetworkState,
    StateConfig,
    VlanConfig,
)

LOG = logging.getLogger("wicked_migrate.adapter")

KEYFILE_SUFFIX = ".nmconnection"
UNSAFE_FILENAME = re.compile(r"[^\w.@:+-]")


class Adapter(Protocol):
    """Boundary to the system that owns the live network configuration."""

    def read(self, config: StateConfig) -> NetworkState:
        ...

    def write(self, state: NetworkState) -> None:
        ...


@dataclass
class RenderedKeyfile:
    """Holds rendered keyfile text and destination path."""

    text: str
    output_path: Path


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _connection_type(connection: Connection) -> str:
    config = connection.config
    if isinstance(config, EthernetConfig):
        return "ethernet"
    if isinstance(config, BondConfig):
        return "bond"
    if isinstance(config, BridgeConfig):
        return "bridge"
    if isinstance(config, VlanConfig):
        return "vlan"
    if isinstance(config, DummyConfig):
        return "dummy"
    if isinstance(config, LoopbackConfig):
        return "loopback"
    raise TypeError(f"Unsupported connection config {type(config).__name__}")


def _kind_section(connection: Connection) -> tuple[str, list[tuple[str, Any]]] | None:
    """Return the type-specific keyfile section, if the kind has one."""
    config = connection.config
    if isinstance(config, EthernetConfig):
        entries = [
            ("auto-negotiate", None if config.auto_negotiate is None else _bool(config.auto_negotiate)),
            ("speed", config.speed),
            ("duplex", config.duplex),
        ]
        return "ethernet", entries
    if isinstance(config, BondConfig):
        return "bond", list(config.options().items())
    if isinstance(config, BridgeConfig):
        entries = [
            ("stp", _bool(config.stp)),
            ("priority", config.priority),
            ("forward-delay", None if config.forward_delay is None else int(config.forward_delay)),
            ("hello-time", None if config.hello_time is None else int(config.hello_time)),
            ("max-age", None if config.max_age is None else int(config.max_age)),
            ("ageing-time", None if config.ageing_time is None else int(config.ageing_time)),
        ]
        return "bridge", entries
    if isinstance(config, VlanConfig):
        return "vlan", [("id", config.id), ("parent", config.parent), ("protocol", config.protocol)]
    if isinstance(config, (DummyConfig, LoopbackConfig)):
        return None
    raise TypeError(f"Unsupported connection config {type(config).__name__}")


def _ip_section(ip_config: IpConfig, version: int) -> list[tuple[str, Any]] | None:
    method = ip_config.method4 if version == 4 else ip_config.method6
    if method == IpMethod.NONE:
        return None
    entries: list[tuple[str, Any]] = [("method", method.value)]
    for index, address in enumerate(ip_config.addresses_for(version), start=1):
        entries.append((f"address{index}", address))
    entries.append(("gateway", ip_config.gateway4 if version == 4 else ip_config.gateway6))
    routes = [route for route in ip_config.routes if (":" in route.destination) == (version == 6)]
    for index, route in enumerate(routes, start=1):
        value = ",".join(str(part) for part in (route.destination, route.gateway, route.metric) if part is not None)
        entries.append((f"route{index}", value))
    nameservers = [server for server in ip_config.nameservers if (":" in server) == (version == 6)]
    if nameservers:
        entries.append(("dns", ";".join(nameservers) + ";"))
    if ip_config.dns_searchlist:
        entries.append(("dns-search", ";".join(ip_config.dns_searchlist) + ";"))
    priority = ip_config.dns_priority4 if version == 4 else ip_config.dns_priority6
    entries.append(("dns-priority", priority))
    if ip_config.ignore_auto_dns:
        entries.append(("ignore-auto-dns", "true"))
    dhcp = ip_config.dhcp4 if version == 4 else ip_config.dhcp6
    if dhcp is not None:
        entries.append(("dhcp-send-hostname", _bool(dhcp.send_hostname)))
        entries.append(("dhcp-hostname", dhcp.hostname))
        entries.append(("dhcp-client-id" if version == 4 else "dhcp-duid", dhcp.client_id))
        entries.append(("route-metric", dhcp.route_metric))
    return entries


def _keyfile_sections(connection: Connection, state: NetworkState) -> list[dict[str, Any]]:
    """Build the ordered keyfile sections for one connection."""
    general: list[tuple[str, Any]] = [
        ("id", connection.id),
        ("uuid", connection.uuid),
        ("type", _connection_type(connection)),
        ("interface-name", connection.interface),
        ("autoconnect", None if connection.autoconnect else "false"),
        ("zone", connection.firewall_zone),
    ]
    if connection.controller is not None:
        general.append(("controller", connection.controller))
        controller = next((c for c in state.connections if c.uuid == connection.controller), None)
        if controller is not None:
            general.append(("port-type", _connection_type(controller)))
    sections = [("connection", general)]

    kind = _kind_section(connection)
    if connection.mtu is not None:
        if kind is None or kind[0] != "ethernet":
            sections.append(("ethernet", [("mtu", connection.mtu)]))
        else:
            kind[1].append(("mtu", connection.mtu))
    if kind is not None:
        sections.append(kind)
    if connection.port_config is not None:
        sections.append(
            (
                "bridge-port",
                [("priority", connection.port_config.priority), ("path-cost", connection.port_config.path_cost)],
            )
        )
    if not connection.match_config.is_default():
        sections.append(
            (
                "match",
                [
                    ("interface-name", ";".join(connection.match_config.interface_names) or None),
                    ("mac-address", ";".join(connection.match_config.mac_addresses) or None),
                ],
            )
        )
    for version in (4, 6):
        entries = _ip_section(connection.ip_config, version)
        if entries is not None:
            sections.append((f"ipv{version}", entries))

    return [
        {"name": name, "entries": [(key, value) for key, value in entries if value is not None]}
        for name, entries in sections
    ]


def keyfile_name(connection: Connection) -> str:
    """Return a filesystem-safe keyfile name for a connection."""
    return UNSAFE_FILENAME.sub("_", connection.id) + KEYFILE_SUFFIX


def _parse_ip(parser: configparser.ConfigParser, version: int, ip_config: IpConfig) -> None:
    section = f"ipv{version}"
    if not parser.has_section(section):
        if version == 4:
            ip_config.method4 = IpMethod.NONE
        else:
            ip_config.method6 = IpMethod.NONE
        return
    values = parser[section]
    method = values.get("method", "disabled")
    try:
        parsed = IpMethod(method)
    except ValueError:
        LOG.debug("Unknown ipv%s method '%s', treating as disabled", version, method)
        parsed = IpMethod.DISABLED
    if version == 4:
        ip_config.method4 = parsed
        ip_config.gateway4 = values.get("gateway")
    else:
        ip_config.method6 = parsed
        ip_config.gateway6 = values.get("gateway")
    for key, value in values.items():
        if re.fullmatch(r"address\d+", key):
            ip_config.addresses.append(value.split(",", 1)[0])
    ip_config.nameservers.extend(item for item in values.get("dns", "").split(";") if item)
    # dns-search is written to both families
    for domain in values.get("dns-search", "").split(";"):
        if domain and domain not in ip_config.dns_searchlist:
            ip_config.dns_searchlist.append(domain)
    ip_config.ignore_auto_dns = ip_config.ignore_auto_dns or values.get("ignore-auto-dns") == "true"
    if "dhcp-send-hostname" in values or "dhcp-hostname" in values:
        settings = DhcpSettings(
            send_hostname=values.get("dhcp-send-hostname", "true") == "true",
            hostname=values.get("dhcp-hostname"),
        )
        if version == 4:
            ip_config.dhcp4 = settings
        else:
            ip_config.dhcp6 = settings


def _config_from_keyfile(parser: configparser.ConfigParser, connection_type: str):
    if connection_type == "loopback":
        return LoopbackConfig()
    if connection_type in ("ethernet", "802-3-ethernet"):
        return EthernetConfig()
    if connection_type == "dummy":
        return DummyConfig()
    if connection_type == "bond":
        return BondConfig(mode=parser.get("bond", "mode", fallback="balance-rr"))
    if connection_type == "bridge":
        return BridgeConfig(stp=parser.get("bridge", "stp", fallback="true") == "true")
    if connection_type == "vlan":
        return VlanConfig(parent=parser.get("vlan", "parent", fallback=""), id=parser.getint("vlan", "id", fallback=0))
    return None


def parse_keyfile(path: Path) -> Connection | None:
    """Parse a keyfile into a connection; unsupported types yield None."""
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with path.open(encoding="utf-8") as handle:
            parser.read_file(handle)
        connection_type = parser.get("connection", "type")
        config = _config_from_keyfile(parser, connection_type)
        if config is None:
            LOG.debug("Skipping %s: unsupported connection type %s", path, connection_type)
            return None
        connection = Connection(
            id=parser.get("connection", "id"),
            uuid=UUID(parser.get("connection", "uuid")),
            interface=parser.get("connection", "interface-name", fallback=None),
            config=config,
            firewall_zone=parser.get("connection", "zone", fallback=None),
            autoconnect=parser.get("connection", "autoconnect", fallback="true") == "true",
        )
        controller = parser.get("connection", "controller", fallback=None) or parser.get(
            "connection", "master", fallback=None
        )
        if controller:
            connection.controller = UUID(controller)
        _parse_ip(parser, 4, connection.ip_config)
        _parse_ip(parser, 6, connection.ip_config)
    except (OSError, configparser.Error, ValueError) as exc:
        raise AdapterError(f"Failed to read keyfile {path}: {exc}") from exc
    return connection


class KeyfileAdapter:
    """Reads and writes NetworkManager keyfiles in a directory."""

    def __init__(self, keyfile_dir: Path, templates_dir: Path, template_name: str = "keyfile.j2"):
        self.keyfile_dir = keyfile_dir
        self.templates_dir = templates_dir
        self.template_name = template_name

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> KeyfileAdapter:
        return cls(settings.keyfile_dir, settings.templates_dir)

    def read(self, config: StateConfig) -> NetworkState:
        """Return the connections currently stored in the keyfile directory."""
        state = NetworkState()
        if not config.connections:
            return state
        if not self.keyfile_dir.is_dir():
            LOG.info("Keyfile directory %s does not exist; assuming no connections", self.keyfile_dir)
            return state
        for path in sorted(self.keyfile_dir.glob(f"*{KEYFILE_SUFFIX}")):
            connection = parse_keyfile(path)
            if connection is not None:
                state.connections.append(connection)
        LOG.debug("Read %s connections from %s", len(state.connections), self.keyfile_dir)
        return state

    def render(self, state: NetworkState) -> list[RenderedKeyfile]:
        """Render every connection of the state without touching the disk."""
        env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        try:
            template = env.get_template(self.template_name)
            return [
                RenderedKeyfile(
                    text=template.render(sections=_keyfile_sections(connection, state)).strip() + "\n",
                    output_path=self.keyfile_dir / keyfile_name(connection),
                )
                for connection in state.connections
            ]
        except TemplateError as exc:
            raise AdapterError(f"Failed to render keyfiles from {self.templates_dir}: {exc}") from exc

    def write(self, state: NetworkState) -> None:
        """Write every keyfile or none of them.

        All files are rendered and staged next to their destination before
        the first one is moved into place; a failure restores the files
        already replaced and removes the staged copies.
        """
        rendered = self.render(state)
        staged: list[tuple[Path, RenderedKeyfile]] = []
        replaced: list[tuple[Path, bytes | None]] = []
        try:
            self.keyfile_dir.mkdir(parents=True, exist_ok=True)
            for keyfile in rendered:
                tmp_path = keyfile.output_path.with_name(f".{keyfile.output_path.name}.tmp")
                fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                staged.append((tmp_path, keyfile))
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    # O_CREAT keeps the mode of a leftover file
                    os.fchmod(handle.fileno(), 0o600)
                    handle.write(keyfile.text)
            for tmp_path, keyfile in staged:
                previous = keyfile.output_path.read_bytes() if keyfile.output_path.is_file() else None
                os.replace(tmp_path, keyfile.output_path)
                replaced.append((keyfile.output_path, previous))
        except OSError as exc:
            _rollback(staged, replaced)
            raise AdapterError(f"Failed to write keyfiles to {self.keyfile_dir}: {exc}") from exc
        for path, _ in replaced:
            LOG.info("Wrote keyfile %s", path)


def _rollback(staged: list[tuple[Path, RenderedKeyfile]], replaced: list[tuple[Path, bytes | None]]) -> None:
    for path, previous in reversed(replaced):
        try:
            if previous is None:
                path.unlink()
            else:
                path.write_bytes(previous)
        except OSError as exc:
            LOG.error("Failed to restore %s: %s", path, exc)
    for tmp_path, _ in staged:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as exc:
            LOG.error("Failed to remove staged keyfile %s: %s", tmp_path, exc)
