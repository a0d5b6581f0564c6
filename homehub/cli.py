"""Command-line interface for homehub."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import HubApp
from .config import load_config
from .core.models import Rule, RuleValidationError
from .core.snapshots import JsonSnapshot, SnapshotError
from .rules import empty_rules_document

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="MQTT home automation hub with a time-triggered rule scheduler",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the homehub service")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )
    subparsers.add_parser("rules", help="Print the persisted rules and exit")

    return parser


def _print_rules(snapshot_path: Path) -> int:
    if not snapshot_path.exists():
        print(f"No rule snapshot at {snapshot_path}")
        return 0

    document = JsonSnapshot(snapshot_path, empty=empty_rules_document).load()
    if not isinstance(document, dict):
        raise SnapshotError(f"Rule snapshot {snapshot_path} must hold a JSON object")
    entries = document.get("configs") or []
    if not entries:
        print("No rules configured")
        return 0

    for entry in entries:
        rule = Rule.from_dict(entry)
        trigger = rule.time or "--:--"
        if rule.uses_solar_time:
            trigger = (
                f"{trigger} ({rule.command.value} @ {rule.latitude}, {rule.longitude})"
            )
        print(f"{rule.id:>4}  {trigger:<32} {rule.topic} <- {rule.message}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        return HubApp.start(config)

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                if key == "password" and value:
                    value = "********"
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "rules":
        try:
            return _print_rules(config.rules.snapshot_path)
        except (SnapshotError, RuleValidationError) as exc:
            LOGGER.error("Cannot read rules: %s", exc)
            return 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
