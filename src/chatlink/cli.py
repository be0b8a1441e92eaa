"""CLI bootstrap entry point for chatlink."""

import argparse
import asyncio
import logging
import sys
import time
from typing import Optional

from .client import ChatClient
from .config import ClientConfig
from .errors import ChatLinkError
from .logging import log_event, sanitize_error_message, setup_logging
from .session import Conversation
from .timeouts import format_timeout

__all__ = ["main", "build_parser"]

EXIT_COMMANDS = {"/exit", "/quit"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatlink",
        description="chatlink - authenticated chat client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Without a message an interactive session starts.\n"
            "Session commands: /clear, /token, /exit"
        ),
    )
    parser.add_argument("-u", "--base-url", help="Server base address (env: CHATLINK_BASE_URL)")
    parser.add_argument("--user", help="User id requested from the token endpoint")
    parser.add_argument("-s", "--system", help="System prompt override")
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        help="Per-attempt timeout in seconds, 0 waits forever",
    )
    parser.add_argument("-l", "--log", help="Path to log file (optional)")
    parser.add_argument("message", nargs="*", help="Send one message and exit")
    return parser


def _describe_token(client: ChatClient) -> str:
    info = client.describe_credential()
    if not info["present"]:
        return "No credential held"
    state = "valid" if client.has_valid_credential() else "expiring"
    return f"{info['token_type']} credential, expires {info['expires_at'].isoformat()} ({state})"


async def _one_shot(client: ChatClient, text: str, system: Optional[str]) -> str:
    response = await client.send(
        {"messages": [{"role": "user", "content": text}], "system": system}
    )
    return response.content


async def _interactive(client: ChatClient, system: Optional[str]) -> None:
    conversation = Conversation(client, system=system)
    print(f"Connected to {client.base_url}. Type /exit to quit.")

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            print()
            return

        command = line.strip()
        if command in EXIT_COMMANDS:
            return
        if command == "/clear":
            conversation.clear()
            print("Conversation cleared")
            continue
        if command == "/token":
            print(_describe_token(client))
            continue

        try:
            reply = await conversation.send(line)
        except ChatLinkError as e:
            print(f"Error: {sanitize_error_message(str(e))}")
            continue
        if reply is not None:
            print(reply)


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the chatlink CLI."""
    args = build_parser().parse_args(argv)
    app_started = time.perf_counter()

    try:
        config = ClientConfig.from_env(
            base_url=args.base_url,
            user_id=args.user,
            timeout_sec=args.timeout,
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    setup_logging(args.log)
    message = " ".join(args.message).strip()
    client = ChatClient(config)

    log_event(
        "app_start",
        mode="one_shot" if message else "interactive",
        base_url=config.base_url,
        user_id=config.user_id,
        timeout=format_timeout(config.timeout_sec),
        max_attempts=config.max_attempts,
        log_file=args.log,
    )

    try:
        if message:
            print(asyncio.run(_one_shot(client, message, args.system)))
        else:
            asyncio.run(_interactive(client, args.system))
        log_event(
            "app_stop",
            reason="normal",
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
    except KeyboardInterrupt:
        log_event(
            "app_stop",
            reason="keyboard_interrupt",
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        print("\nInterrupted")
        sys.exit(0)
    except ChatLinkError as e:
        print(f"Error: {sanitize_error_message(str(e))}")
        log_event(
            "app_stop",
            level=logging.ERROR,
            reason="request_failed",
            error_type=type(e).__name__,
            error=str(e),
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
