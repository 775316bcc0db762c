"""Environment-driven settings loader."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

DEFAULT_NETCONFIG_PATH = Path("/etc/sysconfig/network/config")
DEFAULT_NETCONFIG_DHCP_PATH = Path("/etc/sysconfig/network/dhcp")
DEFAULT_KEYFILE_DIR = Path("/etc/NetworkManager/system-connections")
PACKAGED_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class MigrationSettings:
    """Run-wide settings, passed explicitly to every migration stage."""

    continue_migration: bool = False
    dry_run: bool = False
    with_netconfig: bool = True
    netconfig_path: Path = DEFAULT_NETCONFIG_PATH
    netconfig_dhcp_path: Path = DEFAULT_NETCONFIG_DHCP_PATH
    keyfile_dir: Path = DEFAULT_KEYFILE_DIR
    templates_dir: Path = PACKAGED_TEMPLATES_DIR
    log_level: str = "INFO"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Return a boolean parsed from a string."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _path_from_env(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


def load_settings(**overrides: Any) -> MigrationSettings:
    """Load settings from the environment (and .env), then apply overrides.

    Overrides whose value is ``None`` are ignored so CLI flags that were not
    given fall back to the environment.
    """
    load_dotenv()
    settings = MigrationSettings(
        continue_migration=_parse_bool(os.getenv("CONTINUE_MIGRATION")),
        dry_run=_parse_bool(os.getenv("DRY_RUN")),
        with_netconfig=_parse_bool(os.getenv("WITH_NETCONFIG"), default=True),
        netconfig_path=_path_from_env("NETCONFIG_PATH", DEFAULT_NETCONFIG_PATH),
        netconfig_dhcp_path=_path_from_env("NETCONFIG_DHCP_PATH", DEFAULT_NETCONFIG_DHCP_PATH),
        keyfile_dir=_path_from_env("NM_KEYFILE_DIR", DEFAULT_KEYFILE_DIR),
        templates_dir=_path_from_env("TEMPLATES_DIR", PACKAGED_TEMPLATES_DIR),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    applied = {key: value for key, value in overrides.items() if value is not None}
    for key in ("netconfig_path", "netconfig_dhcp_path", "keyfile_dir", "templates_dir"):
        if key in applied:
            applied[key] = Path(applied[key])
    return replace(settings, **applied)
