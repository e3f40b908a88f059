#!/usr/bin/env python3
"""Command-line front end.

Usage:
    rtxcraft read DEVICE RESOURCE [--param KEY=VALUE ...]
    rtxcraft import DEVICE RESOURCE [--param KEY=VALUE ...]
    rtxcraft plan DEVICE RESOURCE -f desired.yaml [--param KEY=VALUE ...]
    rtxcraft apply DEVICE RESOURCE -f desired.yaml [--save] [--param KEY=VALUE ...]
    rtxcraft delete DEVICE RESOURCE [--save] [--param KEY=VALUE ...]

Results are printed as JSON.

Environment variables:
    RTX_PASSWORD, RTX_ADMIN_PASSWORD    Device credentials (see password_env)
    RTXCRAFT_LOG_LEVEL                  Console log level
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

import yaml

from .config.inventory import DeviceInventory
from .engine.coordinator import SessionCoordinator, TransportFactory
from .engine.reconciler import Reconciler
from .errors import ApplyError, RTXError
from .grammars import GRAMMARS, get_grammar
from .transport import create_transport
from .utils.audit_log import setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def parse_params(pairs: Optional[list[str]]) -> dict[str, str]:
    """["descriptor_id=1000", ...] -> {"descriptor_id": "1000"}."""
    params = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {pair!r}")
        params[key.strip()] = value.strip()
    return params


def load_desired(path: Path) -> dict[str, Any]:
    """Desired record from a YAML (or JSON) file."""
    with open(path) as f:
        desired = yaml.safe_load(f)
    if not isinstance(desired, dict):
        raise ValueError(f"{path} must contain a mapping")
    return desired


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rtxcraft",
        description="Reconcile RTX router configuration over the CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Resources: {", ".join(sorted(GRAMMARS))}

Examples:
    rtxcraft read rtx-core syslog
    rtxcraft import rtx-core nat_masquerade --param descriptor_id=1000
    rtxcraft apply rtx-core static_route --param network=10.0.0.0/8 -f route.yaml --save
""",
    )
    parser.add_argument("--config", type=Path, help="Inventory file (default: searched)")
    parser.add_argument("--deadline", type=float, help="Seconds the whole operation may take")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="operation", required=True)
    for name, help_text in (
        ("read", "Show the current record"),
        ("import", "Read an existing resource; fails when absent"),
        ("plan", "Show the commands apply would send"),
        ("apply", "Converge the resource to a desired record"),
        ("delete", "Remove the resource"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("device", help="Device ID from the inventory")
        sub.add_argument("resource", help="Resource grammar name")
        sub.add_argument(
            "--param", "-p",
            action="append",
            metavar="KEY=VALUE",
            help="Resource identity (repeatable), e.g. descriptor_id=1000",
        )
        if name in ("plan", "apply"):
            sub.add_argument("-f", "--file", type=Path, required=True, help="Desired record (YAML)")
        if name in ("apply", "delete"):
            sub.add_argument("--save", action="store_true", help="Persist running config afterwards")

    return parser


async def run(
    args: argparse.Namespace,
    inventory: DeviceInventory,
    transport_factory: Optional[TransportFactory] = None,
) -> dict[str, Any]:
    """Execute one operation and return the JSON-ready result."""
    params = parse_params(args.param)
    grammar = get_grammar(args.resource)
    bound = grammar.bind(**params) if params else grammar

    coordinator = SessionCoordinator(
        inventory.get_identity(args.device),
        transport_factory or create_transport,
        inventory.settings,
    )
    async with coordinator:
        reconciler = Reconciler(coordinator)
        result: dict[str, Any] = {"device": args.device, "resource": grammar.name}

        if args.operation == "read":
            result["record"] = await reconciler.read(bound, args.deadline)
        elif args.operation == "import":
            result["record"] = await reconciler.import_(grammar, params, args.deadline)
        elif args.operation == "plan":
            plan = await reconciler.plan(bound, load_desired(args.file), args.deadline)
            result.update(plan.to_dict())
        elif args.operation == "apply":
            record = await reconciler.apply(bound, load_desired(args.file), args.save, args.deadline)
            result["record"] = record
        elif args.operation == "delete":
            await reconciler.delete(bound, args.save, args.deadline)
            result["deleted"] = True

    return result


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        os.environ["RTXCRAFT_LOG_LEVEL"] = "DEBUG"
    setup_logging(console=True)
    setup_audit_logging()

    try:
        inventory = DeviceInventory(str(args.config) if args.config else None)
        output = asyncio.run(run(args, inventory))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except ApplyError as e:
        print(json.dumps(e.to_dict(), indent=2))
        return 1
    except RTXError as e:
        print(json.dumps({"error": str(e), "type": type(e).__name__}, indent=2))
        return 1
    except (FileNotFoundError, KeyError, ValueError, argparse.ArgumentTypeError) as e:
        logger.error(str(e))
        return 2

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
