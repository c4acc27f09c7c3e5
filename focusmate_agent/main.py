"""CLI entry point for the Focusmate agent.

Each tool is available as a subcommand that prints the tool's JSON result;
``chat`` starts an interactive conversation with the LLM agent and
``serve`` runs the HTTP API.

Usage:
    focusmate-agent auth [--force]
    focusmate-agent book 2026-03-02T14:30:00Z --duration 25
    focusmate-agent cancel <session-id>
    focusmate-agent list 2026-03-02T00:00:00Z [2026-03-09T00:00:00Z]
    focusmate-agent set-api-key <key>
    focusmate-agent logout
    focusmate-agent chat [--debug]
    focusmate-agent serve
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid

from dotenv import load_dotenv
from langchain_core.messages import HumanMessage

from focusmate_agent.config import set_api_key
from focusmate_agent.dispatcher import ActionDispatcher, Err, build_dispatcher
from focusmate_agent.tools.focusmate import build_tools

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("focusmate_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="focusmate-agent", description="Focusmate session tools")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    auth = sub.add_parser("auth", help="Log into Focusmate in a browser window")
    auth.add_argument("--force", action="store_true", help="Re-authenticate even if logged in")

    book = sub.add_parser("book", help="Book a session")
    book.add_argument("start_time", help="ISO 8601 start, e.g. 2026-03-02T14:30:00Z")
    book.add_argument("--duration", default="50", choices=["25", "50", "75"])

    cancel = sub.add_parser("cancel", help="Cancel a session")
    cancel.add_argument("session_id")

    list_ = sub.add_parser("list", help="List sessions in a date range")
    list_.add_argument("start_date")
    list_.add_argument("end_date", nargs="?", default=None)

    key = sub.add_parser("set-api-key", help="Store a Focusmate API key for listings")
    key.add_argument("api_key")

    sub.add_parser("logout", help="Forget the stored credential")
    sub.add_parser("chat", help="Chat with the LLM agent")
    sub.add_parser("serve", help="Run the HTTP API server")
    return parser


def _run_tool(dispatcher: ActionDispatcher, name: str, args: dict) -> int:
    tools = {t.name: t for t in build_tools(dispatcher)}
    result = tools[name].invoke(args)
    print(result)
    envelope = json.loads(result)
    ok = envelope.get("success", "errorCode" not in envelope)
    return 0 if ok else 1


def _chat(dispatcher: ActionDispatcher) -> int:
    """Run the interactive chat loop."""
    from focusmate_agent.agent import create_focusmate_agent  # noqa: PLC0415

    print("\n" + "=" * 60)
    print("  Focusmate Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    agent = create_focusmate_agent(dispatcher)
    session_id = str(uuid.uuid4())
    logger.info("Started new session: %s", session_id)

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            return 0

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            return 0

        if user_input.lower() == "new":
            session_id = str(uuid.uuid4())
            print(f"\n>> New session started: {session_id[:8]}...\n")
            continue

        try:
            result = agent.invoke(
                {"messages": [HumanMessage(content=user_input)]},
                config={"configurable": {"thread_id": session_id}},
            )

            messages = result.get("messages", [])
            if not messages:
                print("Agent: I wasn't able to generate a response. Please try again.\n")
                continue

            last_message = messages[-1]
            reply = last_message.content if hasattr(last_message, "content") else str(last_message)
            print(f"\nAgent: {reply}\n")

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            return 0
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAgent: Something went wrong: {e}")
            print("       Please try again or type 'new' to start a fresh session.\n")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    if args.command == "serve":
        from focusmate_agent.server import run  # noqa: PLC0415

        run()
        return 0

    if args.command == "set-api-key":
        set_api_key(args.api_key)
        print("API key saved.")
        return 0

    dispatcher = build_dispatcher()

    if args.command == "logout":
        outcome = dispatcher.logout()
        print(outcome.message if isinstance(outcome, Err) else outcome.value)
        return 1 if isinstance(outcome, Err) else 0
    if args.command == "chat":
        return _chat(dispatcher)
    if args.command == "auth":
        return _run_tool(dispatcher, "focusmate_auth", {"force": args.force})
    if args.command == "book":
        return _run_tool(dispatcher, "book_session", {"start_time": args.start_time, "duration": args.duration})
    if args.command == "cancel":
        return _run_tool(dispatcher, "cancel_session", {"session_id": args.session_id})
    return _run_tool(
        dispatcher, "list_sessions", {"start_date": args.start_date, "end_date": args.end_date},
    )


if __name__ == "__main__":
    sys.exit(main())
