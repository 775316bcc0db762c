"""High-level orchestration for wicked-migrate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import reader
from .adapter import Adapter, KeyfileAdapter
from .assembler import assemble_state
from .config import MigrationSettings
from .dns_policy import merge_dns_policy
from .exporter import connection_to_yaml
from .interface import RawInterface
from .mapper import map_interface
from .models import (
    AdapterError,
    Connection,
    DocumentError,
    MappingError,
    MigrationAborted,
    NetworkState,
    StateConfig,
)
from .netconfig import NetconfigDhcpPolicy, NetconfigPolicy, read_netconfig, read_netconfig_dhcp
from .resolver import resolve_controllers

LOG = logging.getLogger("wicked_migrate")

CONTINUE_HINT = "use the `--continue-migration` flag to ignore"


@dataclass
class MigrationInput:
    """Everything read from disk before mapping starts."""

    interfaces: list[RawInterface]
    netconfig: NetconfigPolicy | None = None
    netconfig_dhcp: NetconfigDhcpPolicy | None = None


@dataclass
class MigrationPlan:
    """Assembled state plus the warnings collected on the way."""

    state: NetworkState
    warnings: list[str] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Outcome of a migration run."""

    state: NetworkState
    warnings: list[str] = field(default_factory=list)
    applied: bool = False


class MigrationController:
    """Coordinates parse/map/resolve/assemble/merge/write."""

    def __init__(self, settings: MigrationSettings, adapter: Adapter | None = None):
        """Store settings; the adapter is only built when needed."""
        self.settings = settings
        self._adapter = adapter

    @property
    def adapter(self) -> Adapter:
        if self._adapter is None:
            self._adapter = KeyfileAdapter.from_settings(self.settings)
        return self._adapter

    def read(self, paths: list[str]) -> MigrationInput:
        """Parse interface documents and, if enabled, the netconfig policies."""
        result = reader.read(paths)
        migration_input = MigrationInput(interfaces=result.interfaces)
        if not self.settings.with_netconfig:
            return migration_input

        netconfig = read_netconfig(self.settings.netconfig_path)
        if netconfig is not None and netconfig.warnings:
            self._check_warnings(str(self.settings.netconfig_path), netconfig.warnings)
        migration_input.netconfig = netconfig
        try:
            migration_input.netconfig_dhcp = read_netconfig_dhcp(self.settings.netconfig_dhcp_path)
        except DocumentError as exc:
            self._check_warnings(str(self.settings.netconfig_dhcp_path), [str(exc)])
            LOG.warning("Continuing without the netconfig DHCP policy")
        return migration_input

    def plan(self, migration_input: MigrationInput) -> MigrationPlan:
        """Map every interface, resolve controllers and assemble the state."""
        warnings: list[str] = []
        connections: list[Connection] = []
        ports: list[Connection] = []
        parents: dict[str, str] = {}
        port_parents: dict[str, str] = {}

        for interface in migration_input.interfaces:
            try:
                mapping = map_interface(interface, migration_input.netconfig_dhcp)
            except MappingError as exc:
                self._check_warnings(interface.name, [str(exc)])
                LOG.warning("Skipping interface %s", interface.name)
                warnings.append(str(exc))
                continue
            self._check_warnings(interface.name, mapping.warnings)
            warnings.extend(mapping.warnings)
            for connection in mapping.connections:
                if connection.id in mapping.synthesized:
                    ports.append(connection)
                    port_parents[connection.id] = mapping.parents[connection.id]
                else:
                    connections.append(connection)
                    if connection.id in mapping.parents:
                        parents[connection.id] = mapping.parents[connection.id]

        port_warnings = _merge_ports(connections, ports, parents, port_parents)
        for message in port_warnings:
            LOG.warning(message)
        if port_warnings and not self.settings.continue_migration:
            raise MigrationAborted(f"{port_warnings[0]}, {CONTINUE_HINT}")
        warnings.extend(port_warnings)

        warnings.extend(resolve_controllers(connections, parents, self.settings.continue_migration))
        state = assemble_state(connections)
        return MigrationPlan(state=state, warnings=warnings)

    def apply(self, plan: MigrationPlan, netconfig: NetconfigPolicy | None = None) -> MigrationReport:
        """Merge the DNS policy against the live state and write the result."""
        warnings = list(plan.warnings)
        state = plan.state
        if netconfig is not None:
            current_state = self._read_live_state()
            warnings.extend(
                merge_dns_policy(
                    netconfig,
                    state,
                    current_loopback=current_state.loopback(),
                    continue_migration=self.settings.continue_migration,
                )
            )
        try:
            self.adapter.write(state)
        except AdapterError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise AdapterError(f"Failed to write network state: {exc}") from exc
        LOG.info("Migrated %s connections", len(state.connections))
        return MigrationReport(state=state, warnings=warnings, applied=True)

    def migrate(self, paths: list[str]) -> MigrationReport:
        """Run the whole migration; dry runs never touch the adapter."""
        migration_input = self.read(paths)
        plan = self.plan(migration_input)
        if self.settings.dry_run:
            for connection in plan.state.connections:
                LOG.debug("%s", connection_to_yaml(connection))
            LOG.info("Dry run: %s connections would be migrated", len(plan.state.connections))
            return MigrationReport(state=plan.state, warnings=plan.warnings, applied=False)
        return self.apply(plan, migration_input.netconfig)

    def _read_live_state(self) -> NetworkState:
        try:
            return self.adapter.read(StateConfig())
        except AdapterError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise AdapterError(f"Failed to read current network state: {exc}") from exc

    def _check_warnings(self, subject: str, warnings: list[str]) -> None:
        """Log warnings and abort unless continuing was requested."""
        if not warnings:
            return
        for message in warnings:
            LOG.warning(message)
        if not self.settings.continue_migration:
            raise MigrationAborted(f"Migration of {subject} failed: {warnings[0]}, {CONTINUE_HINT}")


def _merge_ports(
    connections: list[Connection],
    ports: list[Connection],
    parents: dict[str, str],
    port_parents: dict[str, str],
) -> list[str]:
    """Fold ports listed by a bond or bridge into the connection list.

    A port that also has its own descriptor keeps that connection; the
    listing only contributes the parent and bridge-port settings it lacks.
    """
    warnings = []
    by_interface = {connection.interface: connection for connection in connections}
    for port in ports:
        parent = port_parents[port.id]
        described = by_interface.get(port.interface)
        if described is None:
            connections.append(port)
            by_interface[port.interface] = port
            parents[port.id] = parent
            continue
        LOG.debug("Port %s has its own descriptor; dropping listed copy", port.id)
        declared = parents.get(described.id)
        if declared is None:
            parents[described.id] = parent
            ip_config = described.ip_config
            if ip_config.method4.is_configured() or ip_config.method6.is_configured():
                warnings.append(f"Interface {described.id}: IP configuration ignored on port of {parent}")
            described.ip_config = port.ip_config
        elif declared != parent:
            warnings.append(f"Interface {described.id} declares master {declared} but is listed as port of {parent}")
        if described.port_config is None:
            described.port_config = port.port_config
    return warnings


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
