"""Command-line front end."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from binstaller import __version__
from binstaller.components import launch_command
from binstaller.config import get_settings, load_flat_config
from binstaller.errors import ConfigError, InstallerError, UnsupportedPlatformError
from binstaller.interaction import ConsentPrompt, ConsolePrompt, StaticConsent
from binstaller.logging import setup_logging
from binstaller.models import ComponentConfig, InstallResult
from binstaller.platforms import current_platform, machine_arch
from binstaller.service import ComponentInstaller


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="binstaller",
        description="Install and update external tool binaries from GitHub releases",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="JSON file with flat component settings")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override one setting, e.g. languageServer.enableAutoUpdate=true",
    )
    answer = parser.add_mutually_exclusive_group()
    answer.add_argument("--yes", action="store_true", help="Accept every install prompt")
    answer.add_argument("--no", action="store_true", help="Decline every install prompt")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    install = sub.add_parser("install", help="Install or update components")
    install.add_argument("components", nargs="*", help="Component ids (default: all)")
    reinstall = sub.add_parser("reinstall", help="Offer a fresh download of one component")
    reinstall.add_argument("component")
    status = sub.add_parser("status", help="Show installed binaries without network access")
    status.add_argument("components", nargs="*", help="Component ids (default: all)")
    sub.add_parser("platform", help="Show the release asset platform for this machine")
    command = sub.add_parser("command", help="Print the command line that starts a component")
    command.add_argument("component")
    return parser


def _load_settings(args: argparse.Namespace) -> dict[str, Any]:
    values: dict[str, Any] = load_flat_config(args.config) if args.config else {}
    for item in args.overrides:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"Expected KEY=VALUE, got {item!r}")
        values[key.strip()] = value
    return values


def _consent(args: argparse.Namespace) -> ConsentPrompt:
    if args.yes:
        return StaticConsent(True)
    if args.no:
        return StaticConsent(False)
    return ConsolePrompt()


def _emit(args: argparse.Namespace, payload: Any, text: str) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True) if args.json else text)


def _install_exit_code(results: dict[str, InstallResult]) -> int:
    """0 when every component is usable, 2 when the platform has no assets, else 1."""
    if any(r.error_type == UnsupportedPlatformError.__name__ for r in results.values()):
        return 2
    return 0 if all(r.available for r in results.values()) else 1


async def _run(args: argparse.Namespace) -> int:
    if args.command == "platform":
        info = current_platform()
        _emit(
            args,
            {"os": info.os_name, "arch": info.arch_name, "suffix": info.file_suffix},
            f"{info.os_name}_{info.arch_name}{info.file_suffix}",
        )
        return 0

    settings = _load_settings(args)
    installer = ComponentInstaller(get_settings(), consent=_consent(args))

    if args.command == "install":
        results = await installer.ensure_all(settings, args.components or None)
        _emit(
            args,
            {component_id: result.to_dict() for component_id, result in results.items()},
            "\n".join(
                f"{component_id}: {result.state.value} {result.path or '-'}"
                for component_id, result in results.items()
            ),
        )
        return _install_exit_code(results)

    if args.command == "reinstall":
        result = await installer.reinstall(args.component, settings)
        _emit(args, result.to_dict(), f"{args.component}: {result.state.value} {result.path or '-'}")
        return 0 if result.available else 1

    if args.command == "status":
        report: dict[str, dict[str, Any]] = {}
        lines = []
        for component_id in args.components or installer.registry.ids:
            binary = await installer.status(component_id, settings)
            report[component_id] = {
                "path": binary.path,
                "exists": binary.exists,
                "version": binary.reported_version,
            }
            detail = binary.reported_version or ("unknown version" if binary.exists else "missing")
            lines.append(f"{component_id}: {binary.path} ({detail})")
        _emit(args, report, "\n".join(lines))
        return 0 if all(entry["exists"] for entry in report.values()) else 1

    # command
    spec = installer.registry.get(args.component)
    binary = await installer.status(args.component, settings)
    if not binary.exists:
        print(f"error: {spec.display_name} is not installed at {binary.path}", file=sys.stderr)
        return 1
    argv = launch_command(spec, binary.path, ComponentConfig.from_mapping(spec.id, settings))
    _emit(args, {"component": spec.id, "argv": argv}, " ".join(argv))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)
    try:
        return asyncio.run(_run(args))
    except UnsupportedPlatformError as exc:
        print(f"error: {exc} (machine: {machine_arch()})", file=sys.stderr)
        return 2
    except InstallerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
