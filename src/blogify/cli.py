from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from dotenv import load_dotenv

from .core.config import ClientConfig
from .core.errors import BlogifyError
from .domain.chat_models import Chat
from .domain.stream_events import StepEvent, StreamEvent, SearchResultsEvent
from .infrastructure.chat_store import ChatStore, build_chat_store
from .security.credentials import BearerCredential
from .services.agent_client import AgentClient
from .services.generation import GenerationListener, GenerationOrchestrator, load_chat
from .services.structured_content import parse_structured_post, post_filename, render_message


class ConsoleListener(GenerationListener):
    """Echo a streaming reply to the terminal as it arrives."""

    def __init__(self, out: TextIO, err: TextIO) -> None:
        self.out = out
        self.err = err
        self._printed = 0

    def on_event(self, event: StreamEvent) -> None:
        if isinstance(event, StepEvent) and event.name:
            self.err.write(f"[{event.name}...]\n")
        elif isinstance(event, SearchResultsEvent) and event.results:
            self.err.write(f"[{len(event.results)} research sources found]\n")

    def on_delta(self, text: str) -> None:
        self.out.write(text[self._printed:])
        self.out.flush()
        self._printed = len(text)

    def on_error(self, error: BlogifyError) -> None:
        self.err.write(f"\nError: {error.message}\n")


def _find_chat(store: ChatStore, chat_id: str) -> Chat:
    for chat in store.list_chats():
        if chat.id == chat_id:
            return load_chat(store, chat)
    raise BlogifyError(f"Chat not found: {chat_id}")


def _cmd_chats(store: ChatStore, args: argparse.Namespace, out: TextIO) -> int:
    for chat in store.list_chats():
        out.write(f"{chat.id}\t{chat.updated_at}\t{chat.title}\n")
    return 0


def _cmd_new(store: ChatStore, args: argparse.Namespace, out: TextIO) -> int:
    chat = store.create_chat(args.title)
    out.write(f"{chat.id}\n")
    return 0


def _cmd_rename(store: ChatStore, args: argparse.Namespace, out: TextIO) -> int:
    chat = store.update_chat(args.chat_id, args.title)
    out.write(f"{chat.id}\t{chat.title}\n")
    return 0


def _cmd_delete(store: ChatStore, args: argparse.Namespace, out: TextIO) -> int:
    store.delete_chat(args.chat_id)
    return 0


def _cmd_show(store: ChatStore, args: argparse.Namespace, out: TextIO) -> int:
    for message in store.list_messages(args.chat_id):
        who = "you" if message.is_user else "assistant"
        out.write(f"--- {who} ({message.timestamp})\n")
        out.write(render_message(message.content, html=args.html) if not message.is_user else message.content)
        out.write("\n")
        if args.out and not message.is_user:
            _export_post(message.content, Path(args.out), args.html, out)
    return 0


def _export_post(content: str, directory: Path, html: bool, out: TextIO) -> None:
    post = parse_structured_post(content)
    if post is None:
        return
    target = directory / post_filename(post, html=html)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        target.write_text(render_message(content, html=html), encoding="utf-8")
    except OSError as exc:
        raise BlogifyError(f"Could not write {target}: {exc}") from exc
    out.write(f"Saved {target}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blogify", description="AI blog-writing assistant client")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("chats", help="List chat sessions")
    p = sub.add_parser("new", help="Create a chat session")
    p.add_argument("title", nargs="?", default="New Chat")
    p = sub.add_parser("rename", help="Rename a chat session")
    p.add_argument("chat_id")
    p.add_argument("title")
    p = sub.add_parser("delete", help="Delete a chat session")
    p.add_argument("chat_id")
    p = sub.add_parser("show", help="Print the messages of a chat session")
    p.add_argument("chat_id")
    p.add_argument("--html", action="store_true", help="Render replies as HTML")
    p.add_argument("--out", metavar="DIR", help="Also save each structured post to DIR")
    p = sub.add_parser("ask", help="Send a prompt and stream the reply")
    p.add_argument("chat_id")
    p.add_argument("prompt")
    p.add_argument("--no-stream", action="store_true", help="Use the non-streaming endpoint")
    return parser


_COMMANDS = {
    "chats": _cmd_chats,
    "new": _cmd_new,
    "rename": _cmd_rename,
    "delete": _cmd_delete,
    "show": _cmd_show,
}


def main(
    argv: Optional[List[str]] = None,
    *,
    config: Optional[ClientConfig] = None,
    store: Optional[ChatStore] = None,
    agent: Optional[AgentClient] = None,
    out: TextIO = sys.stdout,
    err: TextIO = sys.stderr,
) -> int:
    args = build_parser().parse_args(argv)
    if config is None:
        load_dotenv()
        config = ClientConfig.from_env()
    credential = BearerCredential(config.token)
    store = store or build_chat_store(config, credential)
    try:
        if args.command != "ask":
            return _COMMANDS[args.command](store, args, out)
        chat = _find_chat(store, args.chat_id)
        agent = agent or AgentClient.from_config(config, credential)
        listener = ConsoleListener(out, err)
        orchestrator = GenerationOrchestrator(chat, store, agent, listener, streaming=not args.no_stream)
        try:
            result = orchestrator.submit(args.prompt)
        except KeyboardInterrupt:
            err.write("\nCancelled.\n")
            return 130
        if result.error is not None:
            return 1
        out.write("\n")
        return 0
    except BlogifyError as exc:
        err.write(f"Error: {exc.message}\n")
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
