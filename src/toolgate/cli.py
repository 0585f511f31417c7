"""
toolgate command line.

    toolgate schemas [--format openai|anthropic|plain]
    toolgate run NAME --params JSON [--yes] [--timeout S]

Configuration comes from the environment (see toolgate.config). Exit status
is 0 on success, 1 when the action returned an error result and 2 on a
configuration error.
"""

import asyncio
import json
import logging
import sys

from toolgate.actions import ConfigurationError
from toolgate.config import ActionsConfig
from toolgate.confirmation import ConfirmationRequest
from toolgate.manager import ActionManager
from toolgate.types import ConfirmationOutcome

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ACTION_ERROR = 1
EXIT_CONFIG_ERROR = 2

_ANSWERS = {
    "y": ConfirmationOutcome.PROCEED,
    "yes": ConfirmationOutcome.PROCEED,
    "a": ConfirmationOutcome.PROCEED_ALWAYS,
    "always": ConfirmationOutcome.PROCEED_ALWAYS,
}


class TerminalConfirmationSink:
    """Shows the preview on stdout and reads y/a/N from stdin."""

    async def submit(self, request: ConfirmationRequest) -> None:
        print(request.describe())
        answer = await asyncio.to_thread(input, "Proceed? [y]es / [a]lways / [N]o: ")
        request.resolve(_ANSWERS.get(answer.strip().lower(), ConfirmationOutcome.CANCEL))


async def _print_schemas(config: ActionsConfig, fmt: str) -> int:
    manager = ActionManager(config)
    await manager.initialize()
    try:
        schemas = manager.get_all_schemas()
    finally:
        await manager.shutdown()

    if fmt == "openai":
        payload = [schema.to_openai_tool() for schema in schemas]
    elif fmt == "anthropic":
        payload = [schema.to_anthropic_tool() for schema in schemas]
    else:
        payload = [
            {"name": s.name, "description": s.description, "parameters": s.parameters}
            for s in schemas
        ]
    print(json.dumps(payload, indent=2))
    return EXIT_OK


async def _run_action(
    config: ActionsConfig,
    name: str,
    params: dict,
    timeout: float | None,
) -> int:
    sink = None if config.auto_approve else TerminalConfirmationSink()
    manager = ActionManager(config, confirmation_sink=sink)
    await manager.initialize()
    try:
        result = await manager.execute_safely(name, params, timeout=timeout)
    finally:
        await manager.shutdown()

    print(result.display_text)
    if result.error is not None:
        print(f"Error ({result.error.kind.value}): {result.error.message}", file=sys.stderr)
        return EXIT_ACTION_ERROR
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for toolgate."""
    import argparse

    parser = argparse.ArgumentParser(description="Confirmation-gated actions for AI models")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # schemas command
    schemas_parser = subparsers.add_parser("schemas", help="Print action schemas as JSON")
    schemas_parser.add_argument("--format", choices=["openai", "anthropic", "plain"],
                                default="plain", help="Declaration format")

    # run command
    run_parser = subparsers.add_parser("run", help="Run one action")
    run_parser.add_argument("name", help="Action name")
    run_parser.add_argument("--params", default="{}", help="Parameters as a JSON object")
    run_parser.add_argument("--yes", "-y", action="store_true",
                            help="Approve every confirmation without asking")
    run_parser.add_argument("--timeout", type=float, default=None,
                            help="Timeout in seconds (default: TOOLGATE_DEFAULT_TIMEOUT)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command not in ("schemas", "run"):
        parser.print_help()
        return EXIT_CONFIG_ERROR

    try:
        config = ActionsConfig.from_env()
        if args.command == "schemas":
            return asyncio.run(_print_schemas(config, args.format))

        try:
            params = json.loads(args.params)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"--params is not valid JSON: {e}") from e
        if not isinstance(params, dict):
            raise ConfigurationError("--params must be a JSON object")
        if args.yes:
            config.auto_approve = True
        return asyncio.run(_run_action(config, args.name, params, args.timeout))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
