#!/usr/bin/env python3
"""
Main entry point for agentgate.

Runs one non-interactive agent session. Tool calls pass through the command
hooks configured in settings.json.

Usage:
    python main.py -p "Explain main.py"          # Prompt from the command line
    echo "Explain main.py" | python main.py      # Prompt from stdin
    python main.py -p "..." --model=gpt-4o       # Override the model
    python main.py -p "..." --max-session-turns=5
    python main.py -p "..." --settings=./ci-settings.json --debug

Hook Management:
    python main.py hooks list                    # Show configured hooks
"""

import argparse
import asyncio
import signal
import sys
import warnings

# Filter warnings
warnings.filterwarnings('ignore')

from agent import Agent, create_agent
from helper import load_env
from agentgate.config import ConfigError, load_config
from agentgate.hooks import HookConfigError, HooksManager
from agentgate.logger import logger, setup_logging


def handle_hooks_command(config) -> int:
    """Print the configured hooks per event."""
    manager = HooksManager.from_config(config)
    hooks = manager.list_hooks()
    if not hooks:
        print("No hooks configured.")
        return 0

    for event, commands in hooks.items():
        print(f"{event}:")
        for command in commands:
            print(f"  {command}")
    return 0


def read_prompt(args) -> str:
    if args.prompt:
        return args.prompt
    if not sys.stdin.isatty():
        return sys.stdin.read().strip()
    return ""


async def run_agent(agent: Agent, prompt: str) -> int:
    """Run the agent with SIGINT wired to session cancellation."""
    loop = asyncio.get_running_loop()
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, agent.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # add_signal_handler is unavailable on Windows event loops
        pass

    try:
        return await agent.run(prompt)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="agentgate - hook-gated command-line agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py -p "List the TODOs in this repo"
  python main.py -p "Run the tests" --max-session-turns=20
  python main.py hooks list
        """
    )
    parser.add_argument(
        "-p", "--prompt",
        type=str,
        default=None,
        help="Prompt to run (default: read from stdin)"
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="LiteLLM model name (default: settings.json, AGENTGATE_MODEL or gpt-4.1-mini)"
    )
    parser.add_argument(
        "--max-session-turns",
        type=int,
        default=None,
        help="Maximum model calls for the session; negative for unlimited (default: 100)"
    )
    parser.add_argument(
        "--settings",
        type=str,
        action="append",
        default=None,
        help="Extra settings.json merged after the user and project files (repeatable)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Hook management commands")
    hooks_parser = subparsers.add_parser("hooks", help="Inspect configured hooks")
    hooks_parser.add_argument(
        "action",
        choices=["list"],
        help="Hooks action"
    )
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_env()
    setup_logging(debug=bool(args.debug))

    try:
        config = load_config(
            settings_paths=args.settings,
            model=args.model,
            max_session_turns=args.max_session_turns,
            debug=args.debug,
        )
    except (ConfigError, HookConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if config.debug:
        setup_logging(debug=True)

    if args.command == "hooks":
        return handle_hooks_command(config)

    prompt = read_prompt(args)
    if not prompt:
        parser.error("no prompt given: use -p/--prompt or pipe one on stdin")

    logger.debug(f"[agent] Session {config.session_id} using {config.model} in {config.working_dir}")
    agent = create_agent(config)
    return asyncio.run(run_agent(agent, prompt))


if __name__ == "__main__":
    sys.exit(main())
