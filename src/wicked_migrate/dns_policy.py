"""Merge the netconfig static DNS policy into a network state."""

from __future__ import annotations

import copy
import fnmatch
import logging
from typing import Protocol, Sequence

from .models import (
    LOOPBACK_NAME,
    Connection,
    IpConfig,
    IpMethod,
    LoopbackConfig,
    MigrationAborted,
    NetworkState,
)
from .netconfig import DnsMatchRule, NameserverParseError, NetconfigPolicy

LOG = logging.getLogger("wicked_migrate.dns_policy")

LOOPBACK_ADDRESSES = ("127.0.0.1/8", "::1/128")


class DnsMatcher(Protocol):
    """Decides which DNS priority, if any, a connection receives."""

    def match(self, connection: Connection) -> int | None:
        ...


class GlobDnsMatcher:
    """Match interface names against glob rules; the first matching rule wins."""

    def __init__(self, rules: Sequence[DnsMatchRule]):
        self.rules = sorted(rules, key=lambda rule: rule.priority)

    def match(self, connection: Connection) -> int | None:
        name = connection.interface or connection.id
        for rule in self.rules:
            if fnmatch.fnmatchcase(name, rule.pattern):
                return rule.priority
        return None


def create_loopback_connection() -> Connection:
    """Return the canonical loopback connection."""
    return Connection(
        id=LOOPBACK_NAME,
        interface=LOOPBACK_NAME,
        config=LoopbackConfig(),
        ip_config=IpConfig(
            method4=IpMethod.MANUAL,
            method6=IpMethod.MANUAL,
            addresses=list(LOOPBACK_ADDRESSES),
        ),
    )


def _apply_priority(connection: Connection, priority: int) -> None:
    ip_config = connection.ip_config
    if ip_config.method4.is_configured():
        ip_config.dns_priority4 = priority
    if ip_config.method6.is_configured():
        ip_config.dns_priority6 = priority


def merge_dns_policy(
    netconfig: NetconfigPolicy,
    state: NetworkState,
    current_loopback: Connection | None = None,
    continue_migration: bool = False,
    matcher: DnsMatcher | None = None,
) -> list[str]:
    """Apply the static DNS policy to ``state`` and return warnings."""
    warnings: list[str] = []
    if current_loopback is not None:
        LOG.debug("Reusing existing loopback connection %s", current_loopback.id)
        loopback = copy.deepcopy(current_loopback)
    else:
        LOG.debug("Creating loopback connection")
        loopback = create_loopback_connection()

    try:
        nameservers = netconfig.parse_static_dns_servers()
    except NameserverParseError as exc:
        message = f"Error when parsing static DNS servers: {exc}"
        if not continue_migration:
            raise MigrationAborted(f"{message}, use the `--continue-migration` flag to ignore") from exc
        LOG.warning(message)
        warnings.append(message)
        nameservers = []
    loopback.ip_config.nameservers = nameservers

    if netconfig.static_dns_searchlist is not None:
        loopback.ip_config.dns_searchlist = list(netconfig.static_dns_searchlist)

    state.add_connection(loopback)

    matcher = matcher or GlobDnsMatcher(netconfig.dns_match_rules())
    for connection in state.connections:
        if connection.is_loopback():
            continue
        priority = matcher.match(connection)
        if priority is not None:
            _apply_priority(connection, priority)
        if not connection.ip_config.has_dns_priority():
            connection.ip_config.ignore_auto_dns = True
            LOG.debug("Ignoring automatic DNS on %s", connection.id)
    return warnings
