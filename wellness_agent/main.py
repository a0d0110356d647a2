"""CLI entry point for the wellness clinic assistant.

A terminal chat for testing and development.  Pending questions are
answered inline: pick a slot by number (or ``0`` for "none of these work")
and answer confirmations with ``y``/``n``.  For production, use the FastAPI
server (``wellness_agent/server.py``).

Usage:
    python -m wellness_agent.main            # normal mode (quiet)
    python -m wellness_agent.main --debug    # debug mode (shows node traffic)
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from wellness_agent.engine import ConversationEngine, Disposition, TurnResult, create_conversation_engine
from wellness_agent.slots import describe_slot
from wellness_agent.state import (
    NONE_SLOT_ID,
    ConfirmTimeResponse,
    InterruptKind,
    InterruptPayload,
    SelectTimeResponse,
    message_text,
)

logger = logging.getLogger(__name__)

ASSISTANT = "Assistant"


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("wellness_agent").setLevel(logging.DEBUG if debug else logging.WARNING)


def _print_new_messages(result: TurnResult, seen: set[str]) -> None:
    for message in result.state.get("messages") or []:
        if message.id in seen:
            continue
        seen.add(message.id)
        if message.type != "ai":
            continue
        text = message_text(message)
        if text:
            print(f"\n{ASSISTANT}: {text}")
            for citation in message.additional_kwargs.get("citations") or []:
                print(f"    [source] {citation}")


def _ask(pending: InterruptPayload):
    """Prompt for the answer to ``pending``; ``None`` means the user typed a message instead."""
    if pending.kind is InterruptKind.SELECT_TIME:
        if pending.reason:
            print(f"  ({pending.reason})")
        for number, slot in enumerate(pending.slots, start=1):
            print(f"  {number}. {describe_slot(slot)}")
        print("  0. None of these work for me")
        answer = input("Pick a number (or type a message): ").strip()
        if answer.isdigit():
            index = int(answer)
            if index == 0:
                return SelectTimeResponse(slot_id=NONE_SLOT_ID), None
            if 1 <= index <= len(pending.slots):
                return SelectTimeResponse(slot_id=pending.slots[index - 1].id), None
        return None, answer

    if pending.kind is InterruptKind.CONFIRM_TIME:
        answer = input("Confirm? [y/n] (or type a message): ").strip()
        if answer.lower() in ("y", "yes"):
            return ConfirmTimeResponse(confirm=True), None
        if answer.lower() in ("n", "no"):
            return ConfirmTimeResponse(confirm=False), None
        return None, answer

    return None, input("You: ").strip()


def _run_session(engine: ConversationEngine, thread_id: str) -> bool:
    """Chat on one thread.  Returns True when the user asked for a new session."""
    seen: set[str] = set()
    result = engine.start_turn(thread_id, "")
    _print_new_messages(result, seen)

    while True:
        try:
            pending = result.state.get("pending_interrupt")
            if result.disposition is Disposition.SUSPENDED and pending is not None:
                response, text = _ask(pending)
            else:
                response, text = None, input("\nYou: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            return False

        if response is not None:
            result = engine.resume_turn(thread_id, response)
        else:
            if not text:
                continue
            if text.lower() in ("exit", "quit", "q"):
                print("\nGoodbye! Take care!")
                return False
            if text.lower() == "new":
                return True
            result = engine.start_turn(thread_id, text)

        if result.disposition is Disposition.ERROR:
            print(f"\n{ASSISTANT}: I'm sorry, something went wrong. Please try again or type 'new'.")
            continue
        _print_new_messages(result, seen)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Wellness clinic assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including node routing",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Wellness Clinic Assistant - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60)

    engine = create_conversation_engine()
    while True:
        thread_id = str(uuid.uuid4())
        logger.info("Started new session: %s", thread_id)
        if not _run_session(engine, thread_id):
            break
        print(f"\n>> New session started: {thread_id[:8]}...")


if __name__ == "__main__":
    main()
