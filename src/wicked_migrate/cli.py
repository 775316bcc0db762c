"""Command-line entry point for wicked-migrate."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import MigrationSettings, load_settings
from .controller import MigrationController, configure_logging
from .exporter import network_state_to_json, network_state_to_yaml, write_network_state
from .models import MigrationError


def _build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser."""
    parser = argparse.ArgumentParser(description="Migrate wicked network configuration to NetworkManager.")
    parser.add_argument("--log-level", help="Override log level (default from config).")

    subparsers = parser.add_subparsers(dest="command", required=True)
    migrate_parser = subparsers.add_parser("migrate", help="Migrate interfaces to NetworkManager keyfiles.")
    _register_common_arguments(migrate_parser)
    migrate_parser.add_argument("--dry-run", action="store_true", default=None, help="Only log the result.")
    migrate_parser.add_argument("--keyfile-dir", help="Directory receiving the NetworkManager keyfiles.")

    show_parser = subparsers.add_parser("show", help="Print the connections that would be migrated.")
    _register_common_arguments(show_parser)
    show_parser.add_argument("--output", help="Path to write the state (default stdout).")
    show_parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Serialization format for the state.",
    )

    return parser


def _register_common_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by migrate/show."""
    subparser.add_argument(
        "paths",
        nargs="+",
        help="wicked XML files or directories; '-' reads from stdin.",
    )
    subparser.add_argument(
        "-c",
        "--continue-migration",
        action="store_true",
        default=None,
        help="Log warnings and continue instead of aborting.",
    )
    subparser.add_argument(
        "--without-netconfig",
        action="store_false",
        dest="with_netconfig",
        default=None,
        help="Do not read the netconfig DNS/DHCP policy files.",
    )
    subparser.add_argument("--netconfig-path", help="Path to the netconfig file.")
    subparser.add_argument("--netconfig-dhcp-path", help="Path to the netconfig dhcp file.")


def _settings_from_args(args: argparse.Namespace) -> MigrationSettings:
    return load_settings(
        continue_migration=args.continue_migration,
        dry_run=getattr(args, "dry_run", None),
        with_netconfig=args.with_netconfig,
        netconfig_path=args.netconfig_path,
        netconfig_dhcp_path=args.netconfig_dhcp_path,
        keyfile_dir=getattr(args, "keyfile_dir", None),
        log_level=args.log_level,
    )


def _run_migrate(controller: MigrationController, args: argparse.Namespace) -> None:
    """Execute the migrate command."""
    report = controller.migrate(args.paths)
    if report.warnings:
        print(f"Completed with {len(report.warnings)} warning(s).", file=sys.stderr)


def _run_show(controller: MigrationController, args: argparse.Namespace) -> None:
    """Execute the show command."""
    plan = controller.plan(controller.read(args.paths))
    if args.format == "json":
        content = network_state_to_json(plan.state)
    else:
        content = network_state_to_yaml(plan.state)
    if args.output:
        write_network_state(Path(args.output), content)
        print(f"Wrote network state to {args.output}")
    else:
        print(content)


def main() -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()
    try:
        settings = _settings_from_args(args)
        configure_logging(settings.log_level)
        controller = MigrationController(settings)
        if args.command == "migrate":
            _run_migrate(controller, args)
        elif args.command == "show":
            _run_show(controller, args)
        else:  # pragma: no cover - argparse ensures we never reach here
            parser.error(f"Unsupported command {args.command}")
    except MigrationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(3)


if __name__ == "__main__":
    main()
