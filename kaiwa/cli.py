from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from kaiwa import __version__

_MAX_CONTEXT_FILE_BYTES = 10 * 1024 * 1024  # 10 MB


def _valid_port(value: str) -> int:
    """Validate port is an integer in range 1-65535."""
    port = int(value)
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError(f"port must be 1-65535, got {port}")
    return port


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="kaiwa",
        description="Kaiwa -- chat backend for system telemetry",
    )
    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start the Kaiwa API server")
    start_parser.add_argument(
        "--port", type=_valid_port, default=None, help="Port to run on (default: 8430)"
    )
    start_parser.add_argument(
        "--host", default=None, help="Host to bind to (default: 127.0.0.1)"
    )
    start_parser.add_argument("--verbose", action="store_true", help="Also print log records to stderr")

    ask_parser = subparsers.add_parser("ask", help="Send one chat message and print the response")
    ask_parser.add_argument("message", help="The message text")
    ask_parser.add_argument("--context", default="", help="Path to a JSON file used as system context")
    ask_parser.add_argument("--live", action="store_true", help="Attach this machine's live telemetry as context")
    ask_parser.add_argument("--format", default="", help="Preferred response format (text, card, list, table, chart)")
    ask_parser.add_argument("--session", default="", help="Continue an existing session")
    ask_parser.add_argument("--user", default="", help="User id recorded with the session")
    ask_parser.add_argument("--verbose", action="store_true", help="Also print log records to stderr")

    history_parser = subparsers.add_parser("history", help="Show the stored exchanges of a session")
    history_parser.add_argument("--session", required=True, help="Session id")
    history_parser.add_argument("--json", dest="output_json", action="store_true", help="Output raw JSON")

    subparsers.add_parser("cleanup", help="Deactivate idle sessions and delete expired ones")

    args = parser.parse_args()

    if getattr(args, "verbose", False):
        from kaiwa.log import enable_console
        enable_console(logging.DEBUG)

    if args.command == "start":
        _start_server(host=args.host, port=args.port)
    elif args.command == "ask":
        _ask(args)
    elif args.command == "history":
        _show_history(args)
    elif args.command == "cleanup":
        _cleanup()
    else:
        parser.print_help()
        sys.exit(1)


def _start_server(host: str | None, port: int | None) -> None:
    import uvicorn
    from kaiwa.config.loader import get_server_config

    server = get_server_config()
    host = host or server.get("host", "127.0.0.1")
    port = port or int(server.get("port", 8430))

    if host not in ("127.0.0.1", "localhost", "::1"):
        print("Warning: binding to non-loopback address exposes the chat API to the network", file=sys.stderr)

    print()
    print(f"  Kaiwa chat API v{__version__}")
    print(f"  Endpoint:   http://{host}:{port}/chat/message")
    print(f"  API docs:   http://{host}:{port}/docs")
    print()

    uvicorn.run("kaiwa.api:app", host=host, port=port, log_level="warning")


def _load_context_file(path_str: str) -> dict:
    path = Path(path_str)
    if not path.is_file():
        print(f"Error: context file not found: {path}", file=sys.stderr)
        sys.exit(1)
    if path.stat().st_size > _MAX_CONTEXT_FILE_BYTES:
        print(f"Error: context file larger than {_MAX_CONTEXT_FILE_BYTES // (1024 * 1024)} MB", file=sys.stderr)
        sys.exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        print(f"Error: could not read context file: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print("Error: context file must contain a JSON object", file=sys.stderr)
        sys.exit(1)
    return data


def _ask(args: argparse.Namespace) -> None:
    from pydantic import ValidationError

    from kaiwa.intelligence.chat import ChatService
    from kaiwa.models import ChatRequest

    context: dict = {}
    if args.context:
        context = _load_context_file(args.context)
    if args.live:
        from kaiwa.core.collector import collect_context
        context = {**context, **collect_context()}

    try:
        request = ChatRequest(
            message=args.message,
            session_id=args.session or None,
            user_id=args.user or None,
            system_context=context or None,
            user_preferences={"responseFormat": args.format} if args.format else None,
        )
    except ValidationError as exc:
        print(f"Error: invalid message: {exc.errors()[0]['msg']}", file=sys.stderr)
        sys.exit(1)

    response = ChatService().process_message(request)
    print(json.dumps(response.to_wire(), indent=2, default=str))
    if not response.success:
        sys.exit(1)


def _show_history(args: argparse.Namespace) -> None:
    from kaiwa.history.store import ConversationStore

    messages = ConversationStore.get().get_history(args.session[:256])

    if args.output_json:
        print(json.dumps(messages, indent=2, default=str))
        return

    if not messages:
        print("No messages found.")
        return

    print(f"  {len(messages)} exchange(s) in session {args.session}\n")

    for m in messages:
        ts = m.get("timestamp", "")
        if ts:
            ts = ts[:19].replace("T", " ")
        print(f"  {ts}  [{m.get('response_format', 'TEXT'):5s}]  You: {m.get('message', '')}")
        print(f"  {'':19s}           Kaiwa: {m.get('response', '')}")


def _cleanup() -> None:
    from kaiwa.intelligence.chat import ChatService

    result = ChatService().cleanup_old_sessions()
    print(
        f"  {result['deactivated']} session(s) deactivated, "
        f"{result['deleted']} deleted, {result['messages_deleted']} message(s) removed."
    )


if __name__ == "__main__":
    main()
