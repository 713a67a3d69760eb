#!/usr/bin/env python3
"""
Interactive knowledge-collection session.

Runs a conversation in the terminal:
1. Creates a session and prints the opening greeting
2. Sends each line you type as the next turn
3. Shows the reply, follow-up questions and completeness after every turn
4. Ends the session on an empty line, "quit" or Ctrl-D

Usage:
    python scripts/run_session.py
    python scripts/run_session.py --domain village_chronicle --persona chronicler
    LLM_PROVIDER=mock python scripts/run_session.py --in-memory
"""

import argparse
import asyncio
import logging
import sys

from src.core.config import settings
from src.core.exceptions import MycelError
from src.core.logging import configure_logging
from src.domain.models.session import SessionResponse
from src.services.factory import build_session_service

QUIT_WORDS = {"", "quit", "exit", "q"}
BAR_WIDTH = 20


def render_progress_bar(score: float) -> str:
    filled = round(score * BAR_WIDTH)
    return f"[{'#' * filled}{'-' * (BAR_WIDTH - filled)}] {score * 100:.0f}%"


def print_turn(response: SessionResponse) -> None:
    print(f"\n{response.persona_response}")
    for question in response.follow_up_questions:
        print(f"  ? {question}")

    category = response.category_id or "-"
    print(
        f"\n(turn {response.turn_number} | {response.intent} | category: {category} | "
        f"completeness: {render_progress_bar(response.completeness_score)})"
    )
    if response.is_complete:
        print("This entry looks complete. Press Enter to finish, or keep adding detail.")


async def run(args: argparse.Namespace) -> int:
    service = await build_session_service(
        domain=args.domain,
        persona=args.persona,
        in_memory=args.in_memory,
    )

    init = await service.init_session(metadata={"source": "cli"})
    session_id = init.session_id
    print(f"\n{init.greeting}\n")

    while True:
        try:
            line = input("> ").strip()
        except EOFError:
            line = ""

        if line.lower() in QUIT_WORDS:
            break

        try:
            response = await service.continue_session(session_id, line)
        except MycelError as e:
            hint = "try again" if e.recoverable else "cannot continue"
            print(f"\nError ({hint}): {e.message}", file=sys.stderr)
            if not e.recoverable:
                break
            continue

        print_turn(response)
        if response.status != "active":
            break

    session = await service.end_session(session_id)
    print(f"\nSession {session.id} ended: {session.status} after {session.turn_count} turns")
    if session.current_entry is not None:
        entry = session.current_entry
        print(f"Captured: [{entry.category_id}] {entry.title}")
        for key, value in entry.structured_data.items():
            print(f"  {key}: {value}")

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run an interactive knowledge-collection session"
    )
    parser.add_argument(
        "--domain",
        default=settings.default_domain,
        help=f"Domain config name (default: {settings.default_domain})",
    )
    parser.add_argument(
        "--persona",
        default=settings.default_persona,
        help=f"Persona config name (default: {settings.default_persona})",
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Keep sessions and entries in memory instead of SQLite",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level, e.g. WARNING (default: DEBUG if settings.debug else INFO)",
    )
    args = parser.parse_args()

    level = getattr(logging, args.log_level.upper()) if args.log_level else None
    configure_logging(level=level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
