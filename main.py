"""
Citizen water-utility agent entry point.

The HTTP/webhook layer lives elsewhere and calls ``run_workflow`` directly.
This script offers a console mode for development: each line typed is
sent through the real workflow (OpenAI runner, configured upstreams and
stores) as one inbound message.

Usage:
    Console mode: python main.py console
    Other deployment: python main.py console --deployment waterhub
"""

import argparse
import asyncio
import logging
import uuid

from cea_agent.config import DEPLOYMENTS, settings
from cea_agent.schemas.conversation_schema import WorkflowInput

logger = logging.getLogger(__name__)

BLUE = "\033[94m"
GREEN = "\033[92m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


async def _console_loop(deployment: str) -> None:
    from cea_agent.workflow import build_default_workflow

    workflow = build_default_workflow(deployment)
    workflow.store.start_sweeper()
    conversation_id = f"console-{uuid.uuid4().hex[:8]}"

    print()
    print(f"{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  {settings.service.name} - Console ({deployment}){RESET}")
    print(f"{BOLD}  Conversation: {conversation_id}{RESET}")
    print(f"{BOLD}  Type 'quit' to exit{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")

    try:
        while True:
            user_input = (await asyncio.to_thread(input, f"\n{BLUE}[Ciudadano] {RESET}")).strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return

            output = await workflow.run(WorkflowInput(
                input_as_text=user_input,
                conversation_id=conversation_id,
                metadata={"channel": "console"},
            ))
            print(f"{GREEN}{BOLD}[Agente]{RESET} {GREEN}{output.output_text}{RESET}")
            details = f"intent={output.classification} tools={output.tools_invoked}"
            if output.ticket_folio:
                details += f" folio={output.ticket_folio}"
            if output.error:
                details += f" error={output.error}"
            print(f"{DIM}  >> {details} ({output.processing_time_ms:.0f}ms){RESET}")
    finally:
        await workflow.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Citizen water-utility agent")
    subcommands = parser.add_subparsers(dest="command", required=True)
    console = subcommands.add_parser("console", help="Chat with the agent in the terminal")
    console.add_argument(
        "--deployment",
        choices=DEPLOYMENTS,
        default=settings.service.deployment,
        help="Which classifier and personas to use",
    )
    args = parser.parse_args()

    if args.command == "console":
        try:
            asyncio.run(_console_loop(args.deployment))
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Session ended.{RESET}")


if __name__ == "__main__":
    main()
