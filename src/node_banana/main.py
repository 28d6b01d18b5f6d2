"""
Node Banana - Command line entry point.

Usage:
    node-banana run WORKFLOW.json [--node ID] [--out PATH] [-v]
    node-banana models
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from node_banana.core.errors import WorkflowError
from node_banana.core.execution import RunController, RunStatus
from node_banana.core.images import image_dimensions, load_image_file
from node_banana.core.node_types import NodeKind
from node_banana.core.settings import load_settings
from node_banana.core.workflow import load_workflow, save_workflow
from node_banana.providers.base import ModelKind
from node_banana.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _split_assignment(value: str) -> tuple[str, str]:
    node_id, sep, rest = value.partition("=")
    if not sep or not node_id:
        raise argparse.ArgumentTypeError(f"Expected NODE=VALUE, got {value!r}")
    return node_id, rest


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="node-banana",
        description="Run Node Banana image generation workflows",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a workflow file")
    run.add_argument("workflow", type=Path, help="Workflow JSON file")
    run.add_argument("--node", help="Regenerate only this node")
    run.add_argument(
        "--out",
        type=Path,
        help="Where to save the updated workflow (default: overwrite the input)",
    )
    run.add_argument("--settings", type=Path, help="Engine settings JSON")
    run.add_argument("--providers", type=Path, help="Provider configuration JSON")
    run.add_argument(
        "--image",
        action="append",
        default=[],
        type=_split_assignment,
        metavar="NODE=PATH",
        help="Load an image file into an imageInput node",
    )
    run.add_argument(
        "--prompt",
        action="append",
        default=[],
        type=_split_assignment,
        metavar="NODE=TEXT",
        help="Set the text of a prompt node",
    )
    run.add_argument(
        "--generations",
        type=Path,
        metavar="DIR",
        help="Save every generated image into this directory",
    )
    run.add_argument("--dry-run", action="store_true", help="Validate and plan only")

    models = sub.add_parser("models", help="List available models")
    models.add_argument("--providers", type=Path, help="Provider configuration JSON")
    return parser


def _cmd_run(args: argparse.Namespace) -> int:
    store = load_workflow(args.workflow)

    for node_id, path in args.image:
        node = store.require_node(node_id)
        if node.kind is not NodeKind.IMAGE_INPUT:
            raise WorkflowError(f"--image target {node_id} is not an imageInput node")
        image = load_image_file(path)
        store.update_node_data(
            node_id,
            image=image,
            filename=Path(path).name,
            dimensions=image_dimensions(image),
        )

    for node_id, text in args.prompt:
        node = store.require_node(node_id)
        if node.kind is not NodeKind.PROMPT:
            raise WorkflowError(f"--prompt target {node_id} is not a prompt node")
        store.update_node_data(node_id, prompt=text)

    settings = load_settings(args.settings)
    if args.generations:
        settings.generations_dir = str(args.generations)
    providers = ProviderRegistry.from_environment(args.providers)
    controller = RunController(providers, settings)

    if args.dry_run:
        execution_plan, warnings = controller.validate(store)
        for warning in warnings:
            print(f"warning: {warning}")
        for i, batch in enumerate(execution_plan.batches, 1):
            print(f"batch {i}: {', '.join(sorted(batch))}")
        return 0

    if args.node:
        result = asyncio.run(controller.regenerate(store, args.node))
    else:
        result = asyncio.run(controller.run(store))

    for warning in result.warnings:
        print(f"warning: {warning}")
    for node_id, error in result.errored.items():
        print(f"error: {node_id}: {error}")
    for node_id, reason in result.skipped.items():
        print(f"skipped: {node_id}: {reason}")
    print(result.summary())

    out = save_workflow(store, args.out or args.workflow)
    logger.info("Saved workflow to %s", out)
    return 0 if result.status is RunStatus.COMPLETED else 2


def _cmd_models(args: argparse.Namespace) -> int:
    providers = ProviderRegistry.from_environment(args.providers)
    configured = set(providers.list_configured_providers())
    for kind in ModelKind:
        print(f"{kind.value} models:")
        for card in providers.list_models(kind):
            mark = "*" if card.provider in configured else " "
            print(f"  {mark} {card.id:<24} {card.name} ({card.provider})")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Node Banana.

    Returns:
        Exit code (0 for success, 1 for invalid workflows, 2 for degraded
        or cancelled runs)
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "run":
            return _cmd_run(args)
        return _cmd_models(args)
    except (WorkflowError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
