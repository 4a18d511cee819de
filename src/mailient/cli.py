"""Summary: Command-line interface for Mailient Arcus.

Importance: Provides a local entry point for chatting with Arcus and setting up a user.
Alternatives: Use the HTTP API only.
"""

from __future__ import annotations

import argparse
import json
import logging

from mailient.app import build_services
from mailient.chat import ArcusRequest
from mailient.config import AppConfig


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="Mailient Arcus CLI")
    parser.add_argument("--user", type=str, default=None, help="User email (defaults to config)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Send a message to Arcus")
    chat.add_argument("message", type=str)
    chat.add_argument("--conversation", type=str, default=None)
    chat.add_argument("--email-id", type=str, default=None)
    chat.add_argument("--json", action="store_true", help="Print the full response body")

    history = subparsers.add_parser("history", help="Show a stored conversation")
    history.add_argument("conversation_id", type=str)

    store_tokens = subparsers.add_parser("store-tokens", help="Store Google OAuth tokens")
    store_tokens.add_argument("access_token", type=str)
    store_tokens.add_argument("--refresh-token", type=str, default=None)
    store_tokens.add_argument("--expires-at", type=str, default=None)

    privacy = subparsers.add_parser("set-privacy", help="Toggle AI privacy mode")
    privacy.add_argument("mode", choices=["on", "off"])

    note = subparsers.add_parser("add-note", help="Add a note Arcus can search")
    note.add_argument("subject", type=str)
    note.add_argument("content", type=str)

    subparsers.add_parser("serve", help="Run the HTTP API")

    return parser


def run_cli() -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives local use without the web UI.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    config = AppConfig.from_env()

    if args.command == "serve":
        import uvicorn

        from mailient.api import create_app

        uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)
        return

    services = build_services(config, args.user)

    if args.command == "chat":
        body = services.chat.handle(
            ArcusRequest(
                message=args.message,
                conversation_id=args.conversation,
                selected_email_id=args.email_id,
            )
        )
        if args.json:
            print(json.dumps(body, indent=2))
            return
        for step in body.get("agentSteps") or []:
            print(f"[{step['status']}] {step['label']}: {step.get('detail') or step.get('error') or ''}")
        print(body["message"])
        print(f"(conversation {body['conversationId']})")
        return

    if args.command == "history":
        for entry in services.conversations.thread(services.user_email or "", args.conversation_id):
            print(f"#{entry.message_order} you: {entry.user_message}")
            print(f"#{entry.message_order} arcus: {entry.agent_response}")
        return

    if args.command == "store-tokens":
        token_id = services.tokens.store_tokens(
            services.user_email or "", args.access_token, args.refresh_token, args.expires_at
        )
        print(f"Stored tokens {token_id} for {services.user_email}.")
        return

    if args.command == "set-privacy":
        services.profiles.set_privacy_mode(services.user_email or "", args.mode == "on")
        print(f"Privacy mode {args.mode}.")
        return

    if args.command == "add-note":
        note_id = services.notes.add(services.user_email or "", args.subject, args.content)
        print(f"Added note {note_id}.")
        return


if __name__ == "__main__":
    run_cli()
