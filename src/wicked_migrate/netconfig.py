"""Load the legacy netconfig DNS and DHCP policy documents."""

from __future__ import annotations

import ipaddress
import logging
from pathlib import Path

import dns.exception
import dns.name
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import DocumentParseError, DocumentReadError, MigrationError

LOG = logging.getLogger("wicked_migrate.netconfig")

# NETCONFIG_DNS_POLICY keywords that select sources rather than interfaces.
DNS_POLICY_KEYWORDS = frozenset({"auto", "STATIC", "STATIC_FALLBACK"})
DNS_PRIORITY_STEP = 10


class NameserverParseError(MigrationError):
    """Raised when a static nameserver entry is not an IP address."""


def _split_words(value: str | list[str] | None) -> list[str] | None:
    if value is None or isinstance(value, list):
        return value
    return value.split()


class DnsMatchRule(BaseModel):
    """Interface-name glob and the DNS priority it grants."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    priority: int


class NetconfigPolicy(BaseModel):
    """Static DNS configuration from ``/etc/sysconfig/network/config``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    static_dns_servers: list[str] | None = Field(default=None, alias="NETCONFIG_DNS_STATIC_SERVERS")
    static_dns_searchlist: list[str] | None = Field(default=None, alias="NETCONFIG_DNS_STATIC_SEARCHLIST")
    dns_policy: list[str] = Field(default_factory=list, alias="NETCONFIG_DNS_POLICY")
    warnings: list[str] = Field(default_factory=list, exclude=True)

    @field_validator("static_dns_servers", "static_dns_searchlist", mode="before")
    @classmethod
    def _split_optional(cls, value: str | list[str] | None) -> list[str] | None:
        """Split whitespace separated shell values."""
        return _split_words(value)

    @field_validator("dns_policy", mode="before")
    @classmethod
    def _split_policy(cls, value: str | list[str] | None) -> list[str]:
        return _split_words(value) or []

    def parse_static_dns_servers(self) -> list[str]:
        """Return the static nameservers, failing on the first bad entry."""
        nameservers = []
        for entry in self.static_dns_servers or []:
            try:
                nameservers.append(str(ipaddress.ip_address(entry)))
            except ValueError as exc:
                raise NameserverParseError(f"Invalid nameserver '{entry}': {exc}") from exc
        return nameservers

    def dns_match_rules(self) -> list[DnsMatchRule]:
        """Return interface rules from the DNS policy, highest priority first."""
        rules = []
        for token in self.dns_policy:
            if token in DNS_POLICY_KEYWORDS:
                continue
            rules.append(DnsMatchRule(pattern=token, priority=(len(rules) + 1) * DNS_PRIORITY_STEP))
        return rules


class DhcpProtocolPolicy(BaseModel):
    """DHCP client overrides for one IP family."""

    model_config = ConfigDict(frozen=True)

    hostname_option: str | None = None
    client_id: str | None = None
    route_priority: int | None = None

    def send_hostname(self) -> bool | None:
        if self.hostname_option is None:
            return None
        return self.hostname_option != ""

    def hostname(self) -> str | None:
        """Return the explicit hostname to send, if one is configured."""
        if not self.hostname_option or self.hostname_option.upper() == "AUTO":
            return None
        return self.hostname_option


class NetconfigDhcpPolicy(BaseModel):
    """DHCP behaviour from ``/etc/sysconfig/network/dhcp``."""

    model_config = ConfigDict(frozen=True)

    v4: DhcpProtocolPolicy | None = None
    v6: DhcpProtocolPolicy | None = None


def _read_sysconfig(path: Path) -> dict[str, str | None] | None:
    """Return the KEY=value pairs of a sysconfig file, or None if it is absent."""
    if not path.exists():
        LOG.info("%s does not exist, skipping", path)
        return None
    try:
        with path.open(encoding="utf-8") as handle:
            return dict(dotenv_values(stream=handle))
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentReadError(f"Failed to read {path}: {exc}") from exc


def _searchlist_warnings(path: Path, searchlist: list[str] | None) -> list[str]:
    warnings = []
    for domain in searchlist or []:
        try:
            dns.name.from_text(domain)
        except dns.exception.DNSException as exc:
            warnings.append(f"{path}: invalid search domain '{domain}': {exc}")
    return warnings


def read_netconfig(path: Path) -> NetconfigPolicy | None:
    """Load the static DNS policy from a sysconfig file."""
    values = _read_sysconfig(path)
    if values is None:
        return None
    try:
        policy = NetconfigPolicy.model_validate(values)
    except ValueError as exc:
        raise DocumentParseError(f"Invalid netconfig at {path}: {exc}") from exc
    warnings = _searchlist_warnings(path, policy.static_dns_searchlist)
    if warnings:
        policy = policy.model_copy(update={"warnings": warnings})
    return policy


def _protocol_policy(values: dict[str, str | None], prefix: str) -> DhcpProtocolPolicy | None:
    data = {
        "hostname_option": values.get(f"{prefix}_HOSTNAME_OPTION"),
        "client_id": values.get(f"{prefix}_CLIENT_ID") or None,
        "route_priority": values.get(f"{prefix}_ROUTE_PRIORITY") or None,
    }
    if all(value is None for value in data.values()):
        return None
    return DhcpProtocolPolicy.model_validate(data)


def read_netconfig_dhcp(path: Path) -> NetconfigDhcpPolicy | None:
    """Load the DHCP client policy from a sysconfig file."""
    values = _read_sysconfig(path)
    if values is None:
        return None
    try:
        return NetconfigDhcpPolicy(
            v4=_protocol_policy(values, "DHCLIENT"),
            v6=_protocol_policy(values, "DHCLIENT6"),
        )
    except ValueError as exc:
        raise DocumentParseError(f"Invalid netconfig dhcp at {path}: {exc}") from exc
